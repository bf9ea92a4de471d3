import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.logging_config import get_logger
from src.reconciliation import ChangeDecision, LocaleReconciliation

logger = get_logger("report")


@dataclass
class LocaleReport:
    locale: str
    knowledge_base_size: int = 0
    reconciliation: Optional[LocaleReconciliation] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    written_path: Optional[str] = None

    @property
    def restored_count(self) -> int:
        return self.reconciliation.restored_count if self.reconciliation else 0

    @property
    def kept_count(self) -> int:
        return self.reconciliation.kept_count if self.reconciliation else 0

    def to_dict(self) -> Dict[str, Any]:
        decisions = self.reconciliation.decisions if self.reconciliation else []
        return {
            "locale": self.locale,
            "restoredCount": self.restored_count,
            "keptCount": self.kept_count,
            "newKnowledgeBaseSize": self.knowledge_base_size,
            "decisions": [d.to_dict() for d in decisions],
            "warnings": list(self.warnings),
            "error": self.error,
            "written": self.written_path is not None,
        }


@dataclass
class RunReport:
    dry_run: bool
    changed_reference_keys: List[str] = field(default_factory=list)
    locales: List[LocaleReport] = field(default_factory=list)

    @property
    def total_restored(self) -> int:
        return sum(r.restored_count for r in self.locales)

    @property
    def total_kept(self) -> int:
        return sum(r.kept_count for r in self.locales)

    @property
    def files_changed(self) -> int:
        return sum(1 for r in self.locales if r.restored_count > 0)

    def totals(self) -> Dict[str, int]:
        return {
            "restored": self.total_restored,
            "kept": self.total_kept,
            "filesChanged": self.files_changed,
            "locales": len(self.locales),
            "warnings": sum(len(r.warnings) for r in self.locales),
            "errors": sum(1 for r in self.locales if r.error),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dryRun": self.dry_run,
            "changedReferenceKeys": sorted(self.changed_reference_keys),
            "perLocale": [r.to_dict() for r in self.locales],
            "totals": self.totals(),
        }


def _format_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def log_run_report(report: RunReport, verbose: bool = False) -> None:
    """Write the human-readable run summary to the log."""
    if verbose:
        logger.info(
            "Reference keys changed (baseline -> working tree): %d", len(report.changed_reference_keys)
        )
        for key in sorted(report.changed_reference_keys):
            logger.info("  > %s", key)

    for locale_report in report.locales:
        locale = locale_report.locale
        if locale_report.error:
            logger.error("%s: skipped (%s)", locale, locale_report.error)
            continue
        if locale_report.reconciliation is None:
            if verbose:
                logger.info("%s: no community translations found.", locale)
            continue

        if verbose:
            for decision in locale_report.reconciliation.decisions:
                if decision.decision is ChangeDecision.KEEP:
                    logger.info("%s | KEEP (reference changed): %s", locale, decision.key)
                    logger.info("    community: %s (by %s)", _format_value(decision.community_value), decision.author)
                    logger.info("    current:   %s", _format_value(decision.working_value))
                elif decision.decision is ChangeDecision.RESTORE:
                    logger.info("%s | RESTORE: %s", locale, decision.key)
                    logger.info("    community: %s", _format_value(decision.community_value))
                    logger.info("    current:   %s", _format_value(decision.working_value))
                    logger.info(
                        "    author:    %s (%s: %s)", decision.author, (decision.commit_id or "")[:7], decision.message
                    )

        if locale_report.restored_count > 0 or verbose:
            logger.info(
                "%s: %d restored, %d kept (reference changed), %d community keys tracked",
                locale,
                locale_report.restored_count,
                locale_report.kept_count,
                locale_report.knowledge_base_size
            )

    logger.info(
        "Total: %d restored across %d file(s), %d kept (reference changed)",
        report.total_restored,
        report.files_changed,
        report.total_kept
    )
    if report.dry_run:
        logger.info("This was a dry run. Use --apply to write changes.")
    else:
        logger.info("All files updated.")


def write_markdown_report(report: RunReport, report_path: str) -> None:
    """Write a Markdown summary of the run, suitable for a pull request comment."""
    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)

    totals = report.totals()
    with open(report_path, 'w', encoding='utf-8') as f:
        f.write("## Community Translation Restore\n\n")
        f.write(f"Mode: {'dry run' if report.dry_run else 'apply'}\n\n")
        f.write(
            f"**{totals['restored']}** restored across **{totals['filesChanged']}** file(s), "
            f"**{totals['kept']}** kept because the reference text changed.\n\n"
        )
        f.write("| Locale | Restored | Kept | Community keys |\n")
        f.write("|---|---|---|---|\n")
        for locale_report in report.locales:
            f.write(
                f"| `{locale_report.locale}` | {locale_report.restored_count} | "
                f"{locale_report.kept_count} | {locale_report.knowledge_base_size} |\n"
            )

        problems = [r for r in report.locales if r.error or r.warnings]
        if problems:
            f.write("\n### Warnings\n\n")
            for locale_report in problems:
                f.write(f"#### `{locale_report.locale}`\n")
                if locale_report.error:
                    f.write(f"- {locale_report.error}\n")
                for warning in locale_report.warnings:
                    f.write(f"- {warning}\n")
                f.write("\n")
    logger.info("Report written to '%s'.", report_path)


def write_json_report(report: RunReport, report_path: str) -> None:
    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(report.to_dict(), f, ensure_ascii=False, indent=2)
        f.write("\n")
    logger.info("JSON report written to '%s'.", report_path)
