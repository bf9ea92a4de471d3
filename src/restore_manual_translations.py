"""
Restore community-curated translations clobbered by automated regeneration.

For every non-reference locale document:

1. Mine the translations repository history (main branch and proposal
   branches) for commits by human contributors and attribute to each one the
   keys it actually changed.
2. Compare the reference document at the translations repository head with
   the working tree to find keys whose source text changed.
3. Restore the community value of every key whose source did not change;
   keep the current value where it did. Keys without community history are
   left alone.

Runs are dry unless --apply (or RECONCILER_APPLY / `dry_run: false`) is given.
"""
import argparse
import asyncio
import dataclasses
import sys
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from aiolimiter import AsyncLimiter
from tqdm.asyncio import tqdm

from src.app_config import AppConfig, load_app_config
from src.author_classifier import AuthorClassifier
from src.document_model import MalformedDocument
from src.history_miner import mine_community_translations, order_refs
from src.history_provider import GitHistoryProvider, HistoryProvider, HistoryUnavailable, find_repository_root
from src.locale_storage import LocaleStorage
from src.logging_config import get_logger
from src.reconcile_report import (
    LocaleReport,
    RunReport,
    log_run_report,
    write_json_report,
    write_markdown_report
)
from src.reconciliation import reconcile_locale
from src.source_change_detector import detect_changed_keys

logger = get_logger("cli")


class BaselineUnavailable(RuntimeError):
    """Raised when the reference document cannot be established; the run must abort."""


async def load_reference_documents(
        provider: HistoryProvider,
        storage: LocaleStorage,
        config: AppConfig,
        semaphore: asyncio.Semaphore,
        rate_limiter: AsyncLimiter
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Load the baseline reference document (primary ref head) and the working one.

    Raises:
        BaselineUnavailable: If either document is missing or malformed.
    """
    try:
        async with semaphore, rate_limiter:
            baseline = await provider.content_at(config.primary_ref, config.reference_file_name)
    except (HistoryUnavailable, MalformedDocument) as baseline_exc:
        raise BaselineUnavailable(
            f"Could not load '{config.reference_file_name}' from '{config.primary_ref}': {baseline_exc}"
        ) from baseline_exc
    if baseline is None:
        raise BaselineUnavailable(f"'{config.reference_file_name}' does not exist on '{config.primary_ref}'.")

    try:
        working = storage.load(config.reference_locale)
    except (OSError, MalformedDocument) as working_exc:
        raise BaselineUnavailable(
            f"Could not load working copy of '{config.reference_file_name}': {working_exc}"
        ) from working_exc

    return baseline, working


async def collect_candidate_refs(provider: HistoryProvider, config: AppConfig) -> List[str]:
    """The primary ref plus every proposal ref the provider knows about."""
    refs = [config.primary_ref]
    if config.fetch_proposals:
        try:
            refs.extend(await provider.list_refs(config.proposal_ref_pattern))
        except HistoryUnavailable as refs_exc:
            logger.warning("Proposal refs could not be listed: %s", refs_exc)
    return order_refs(refs, config.primary_ref)


async def reconcile_one_locale(
        locale: str,
        provider: HistoryProvider,
        classifier: AuthorClassifier,
        storage: LocaleStorage,
        refs: Sequence[str],
        changed_keys: Set[str],
        config: AppConfig,
        semaphore: asyncio.Semaphore,
        rate_limiter: AsyncLimiter
) -> LocaleReport:
    """Mine, reconcile and (unless dry) persist a single locale."""
    report = LocaleReport(locale=locale)

    mining = await mine_community_translations(
        provider,
        classifier,
        storage.file_name(locale),
        refs,
        semaphore,
        rate_limiter,
        primary_ref=config.primary_ref
    )
    report.knowledge_base_size = len(mining.knowledge_base)
    report.warnings.extend(mining.warnings)
    if not mining.knowledge_base:
        return report

    try:
        working_document = storage.load(locale)
    except (OSError, MalformedDocument) as load_exc:
        logger.error("Could not load working document for '%s': %s", locale, load_exc)
        report.error = f"Working document unreadable: {load_exc}"
        return report

    reconciliation = reconcile_locale(mining.knowledge_base, working_document, changed_keys)
    report.reconciliation = reconciliation

    if not reconciliation.has_changes:
        return report

    if config.dry_run:
        logger.debug("[Dry Run] Would write %d restored value(s) to '%s'.",
                     reconciliation.restored_count, storage.path_for(locale))
        return report

    try:
        report.written_path = storage.save(locale, reconciliation.merged_document)
    except OSError as save_exc:
        logger.error("Could not write '%s': %s", storage.path_for(locale), save_exc)
        report.error = f"Write failed: {save_exc}"
    return report


async def run_reconciliation(
        config: AppConfig,
        provider: HistoryProvider,
        storage: Optional[LocaleStorage] = None,
        classifier: Optional[AuthorClassifier] = None
) -> RunReport:
    """
    Run the full pipeline against an already prepared history provider.

    Raises:
        BaselineUnavailable: If the reference documents cannot be loaded.
    """
    if storage is None:
        storage = LocaleStorage(config.locales_dir, config.document_extension, config.json_indent)
    if classifier is None:
        classifier = AuthorClassifier(config.automated_author_patterns)

    semaphore = asyncio.Semaphore(config.max_concurrent_fetches)
    rate_limiter = AsyncLimiter(max_rate=config.fetch_rate_limit, time_period=config.fetch_rate_period)

    baseline, working_reference = await load_reference_documents(
        provider, storage, config, semaphore, rate_limiter
    )
    changed_keys = detect_changed_keys(baseline, working_reference)
    report = RunReport(dry_run=config.dry_run, changed_reference_keys=sorted(changed_keys))

    refs = await collect_candidate_refs(provider, config)
    logger.info("Scanning %d ref(s): %s", len(refs), ", ".join(refs))

    locales = storage.list_locales(exclude=config.reference_locale)
    if not locales:
        logger.info("No locale documents found in '%s'.", config.locales_dir)
        return report

    tasks = [
        reconcile_one_locale(
            locale, provider, classifier, storage, refs, changed_keys, config, semaphore, rate_limiter
        )
        for locale in locales
    ]
    locale_reports = []
    for coro in tqdm.as_completed(tasks, desc="Reconciling locales", unit="locale"):
        locale_reports.append(await coro)

    report.locales = sorted(locale_reports, key=lambda r: r.locale)
    return report


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Restore community translations overwritten by automated regeneration."
    )
    parser.add_argument('--apply', action='store_true', help="write restored values (default: dry run)")
    parser.add_argument('--verbose', action='store_true', help="log every restore/keep decision")
    parser.add_argument('--config', default=None, help="path to the YAML configuration file")
    parser.add_argument('--report-json', default=None, help="also write the structured report to this path")
    return parser.parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    overrides: Dict[str, Any] = {}
    if args.apply:
        overrides['dry_run'] = False
    if args.verbose:
        overrides['verbose'] = True
    if args.report_json:
        overrides['report_json_path'] = args.report_json
    return dataclasses.replace(config, **overrides) if overrides else config


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main function to orchestrate the restore run.

    Returns:
        int: The process exit status.
    """
    args = parse_args(argv)
    config = apply_cli_overrides(load_app_config(args.config), args)

    logger.info("Restore Manual Translations")
    logger.info("Mode: %s", "DRY RUN (use --apply to write)" if config.dry_run else "APPLY")

    try:
        repo_root = find_repository_root(config.target_project_root)
    except HistoryUnavailable as repo_exc:
        logger.critical("%s", repo_exc)
        return 1

    provider = GitHistoryProvider(
        repo_root,
        remote=config.translations_remote,
        remote_url=config.translations_repo_url,
        timeout_seconds=config.git_timeout_seconds,
        max_retries=config.git_max_retries
    )
    try:
        await provider.prepare_remote(fetch_proposals=config.fetch_proposals)
    except HistoryUnavailable as remote_exc:
        logger.warning("Continuing with locally known refs: %s", remote_exc)

    try:
        report = await run_reconciliation(config, provider)
    except BaselineUnavailable as baseline_exc:
        logger.critical("Aborting, nothing was written: %s", baseline_exc)
        return 1
    except FileNotFoundError as locales_exc:
        logger.critical("%s", locales_exc)
        return 1

    log_run_report(report, verbose=config.verbose)
    if config.report_file_path:
        write_markdown_report(report, config.report_file_path)
    if config.report_json_path:
        write_json_report(report, config.report_json_path)
    return 0


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
