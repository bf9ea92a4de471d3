"""Merge a locale's community knowledge base into its working document."""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AbstractSet, Dict, List, Optional

from src.document_model import flatten, set_nested_value, values_equal
from src.knowledge_base import CommunityKnowledgeBase
from src.logging_config import get_logger

logger = get_logger("reconcile")


class ChangeDecision(Enum):
    RESTORE = "restore"
    KEEP = "keep"
    NEW = "new"
    UNCHANGED = "unchanged"


@dataclass
class KeyDecision:
    key: str
    decision: ChangeDecision
    working_value: Any = None
    community_value: Any = None
    author: Optional[str] = None
    commit_id: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"key": self.key, "decision": self.decision.value}
        if self.decision is not ChangeDecision.NEW:
            payload["communityValue"] = self.community_value
            payload["author"] = self.author
            payload["commitId"] = self.commit_id[:7] if self.commit_id else None
            payload["message"] = self.message
        payload["workingValue"] = self.working_value
        return payload


@dataclass
class LocaleReconciliation:
    merged_document: Dict[str, Any]
    decisions: List[KeyDecision] = field(default_factory=list)

    def by_decision(self, decision: ChangeDecision) -> List[KeyDecision]:
        return [d for d in self.decisions if d.decision is decision]

    @property
    def restored_count(self) -> int:
        return len(self.by_decision(ChangeDecision.RESTORE))

    @property
    def kept_count(self) -> int:
        return len(self.by_decision(ChangeDecision.KEEP))

    @property
    def has_changes(self) -> bool:
        return self.restored_count > 0


def reconcile_locale(
        knowledge_base: CommunityKnowledgeBase,
        working_document: Dict[str, Any],
        changed_keys: AbstractSet[str]
) -> LocaleReconciliation:
    """
    Decide, key by key, whether to restore community values into a working document.

    For every key with community provenance that still exists in the working
    document: an equal value is Unchanged; a differing value is Keep when the
    reference text for that key changed, and Restore otherwise. Working keys
    without community provenance are New and never touched. Keys that no longer
    exist in the working document are not resurrected.

    The input document is not modified; the merged copy keeps its shape and
    key order with only restored values replaced.

    Args:
        knowledge_base: The locale's most recent human-authored values.
        working_document: The locale's current document.
        changed_keys: Reference-language keys whose source text changed.

    Returns:
        LocaleReconciliation: The merged document and one decision per key.
    """
    merged = copy.deepcopy(working_document)
    working_flat = flatten(working_document)
    decisions: List[KeyDecision] = []

    for key, entry in knowledge_base.items():
        if key not in working_flat:
            continue

        working_value = working_flat[key]
        if values_equal(working_value, entry.value):
            decision = ChangeDecision.UNCHANGED
        elif key in changed_keys:
            decision = ChangeDecision.KEEP
        else:
            decision = ChangeDecision.RESTORE
            set_nested_value(merged, key, copy.deepcopy(entry.value))

        decisions.append(KeyDecision(
            key=key,
            decision=decision,
            working_value=working_value,
            community_value=entry.value,
            author=entry.author,
            commit_id=entry.commit_id,
            message=entry.message
        ))

    for key, working_value in working_flat.items():
        if key not in knowledge_base:
            decisions.append(KeyDecision(key=key, decision=ChangeDecision.NEW, working_value=working_value))

    logger.debug(
        "Reconciled %d community key(s) against %d working key(s).", len(knowledge_base), len(working_flat)
    )
    return LocaleReconciliation(merged_document=merged, decisions=decisions)
