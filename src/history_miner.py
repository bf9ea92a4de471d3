"""
Mines the revision history of one locale document for human-authored values.

Every candidate ref is walked oldest-first. Commits reachable from several refs
are processed once. For each human commit the document is diffed against its
parent and only the leaf keys that commit actually changed are attributed to
it. Attributions are folded into a CommunityKnowledgeBase in walk order, so a
later human change to a key replaces an earlier one.

Snapshots are fetched concurrently; folding is always sequential and in walk
order, so the result does not depend on which fetch finishes first.
"""
import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from aiolimiter import AsyncLimiter

from src.author_classifier import AuthorClassifier
from src.document_model import MalformedDocument, flatten, values_equal
from src.history_provider import CommitRecord, HistoryProvider, HistoryUnavailable
from src.knowledge_base import CommunityEntry, CommunityKnowledgeBase
from src.logging_config import get_logger

logger = get_logger("miner")


@dataclass
class MiningResult:
    knowledge_base: CommunityKnowledgeBase
    refs_scanned: List[str] = field(default_factory=list)
    refs_skipped: List[str] = field(default_factory=list)
    human_commits: int = 0
    automated_commits: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class _Snapshot:
    commit: CommitRecord
    current: Optional[Dict[str, Any]]
    parent: Optional[Dict[str, Any]]
    warning: Optional[str] = None
    skip: bool = False


def _natural_sort_key(ref: str) -> List[Any]:
    return [int(part) if part.isdigit() else part for part in re.split(r'(\d+)', ref)]


def order_refs(refs: Iterable[str], primary_ref: Optional[str] = None) -> List[str]:
    """
    Put candidate refs into walk order: the primary ref first, then the others
    in natural sort order (`pr/2` before `pr/10`). Duplicates are dropped.
    """
    unique = list(dict.fromkeys(refs))
    others = sorted((ref for ref in unique if ref != primary_ref), key=_natural_sort_key)
    if primary_ref is not None and primary_ref in unique:
        return [primary_ref] + others
    return others


def attribute_changed_keys(
        current: Dict[str, Any],
        parent: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Return the leaf keys (and their new values) that a commit changed.

    Without a parent snapshot every leaf of `current` counts as changed. Keys
    removed by the commit are not reported.
    """
    current_flat = flatten(current)
    if parent is None:
        return current_flat

    parent_flat = flatten(parent)
    return {
        key: value
        for key, value in current_flat.items()
        if key not in parent_flat or not values_equal(parent_flat[key], value)
    }


async def _fetch_snapshot(
        provider: HistoryProvider,
        commit: CommitRecord,
        path: str,
        semaphore: asyncio.Semaphore,
        rate_limiter: AsyncLimiter
) -> _Snapshot:
    short_id = commit.commit_id[:7]

    try:
        async with semaphore, rate_limiter:
            current = await provider.content_at(commit.commit_id, path)
    except MalformedDocument as malformed_exc:
        return _Snapshot(commit, None, None, warning=f"Skipped commit {short_id}: {malformed_exc}", skip=True)
    except HistoryUnavailable as fetch_exc:
        return _Snapshot(commit, None, None, warning=f"Skipped commit {short_id}: {fetch_exc}", skip=True)

    if current is None:
        # The commit deleted the document.
        return _Snapshot(commit, None, None, skip=True)

    parent_revision = await provider.parent_of(commit)
    if parent_revision is None:
        return _Snapshot(commit, current, None)

    try:
        async with semaphore, rate_limiter:
            parent = await provider.content_at(parent_revision, path)
    except (MalformedDocument, HistoryUnavailable) as parent_exc:
        return _Snapshot(
            commit, current, None,
            warning=f"Parent of commit {short_id} unreadable, treating as first version: {parent_exc}"
        )
    return _Snapshot(commit, current, parent)


async def mine_community_translations(
        provider: HistoryProvider,
        classifier: AuthorClassifier,
        path: str,
        refs: Iterable[str],
        semaphore: asyncio.Semaphore,
        rate_limiter: AsyncLimiter,
        primary_ref: Optional[str] = None
) -> MiningResult:
    """
    Build the community knowledge base for one document.

    Args:
        provider: Source of commits and snapshots.
        classifier: Decides which commit authors are automated.
        path: The document path inside the history (e.g. "ru.json").
        refs: Candidate refs; walked in `order_refs` order.
        semaphore: Bounds concurrent provider calls.
        rate_limiter: Bounds the provider call rate.
        primary_ref: The main branch, walked first.

    Returns:
        MiningResult: The knowledge base plus bookkeeping for the report.
    """
    result = MiningResult(knowledge_base=CommunityKnowledgeBase())
    processed_commits = set()

    for ref in order_refs(refs, primary_ref):
        try:
            async with semaphore, rate_limiter:
                commits = await provider.list_commits(ref, path)
        except HistoryUnavailable as ref_exc:
            logger.warning("Skipping ref '%s' for '%s': %s", ref, path, ref_exc)
            result.refs_skipped.append(ref)
            result.warnings.append(f"Ref '{ref}' skipped: {ref_exc}")
            continue
        result.refs_scanned.append(ref)

        human_commits: List[CommitRecord] = []
        for commit in commits:
            if commit.commit_id in processed_commits:
                continue
            processed_commits.add(commit.commit_id)

            if classifier.is_automated(provider.author_identity(commit)):
                result.automated_commits += 1
                continue
            human_commits.append(commit)

        if not human_commits:
            continue
        result.human_commits += len(human_commits)
        logger.debug("'%s' on '%s': %d human commit(s) to diff.", path, ref, len(human_commits))

        snapshots: Tuple[_Snapshot, ...] = tuple(await asyncio.gather(*[
            _fetch_snapshot(provider, commit, path, semaphore, rate_limiter)
            for commit in human_commits
        ]))

        for snapshot in sorted(snapshots, key=lambda s: s.commit.ordinal):
            if snapshot.warning:
                logger.warning("%s: %s", path, snapshot.warning)
                result.warnings.append(snapshot.warning)
            if snapshot.skip:
                continue
            _fold_snapshot(result.knowledge_base, snapshot)

    return result


def _fold_snapshot(knowledge_base: CommunityKnowledgeBase, snapshot: _Snapshot) -> None:
    commit = snapshot.commit
    changed = attribute_changed_keys(snapshot.current, snapshot.parent)
    for key, value in changed.items():
        knowledge_base.record(key, CommunityEntry(
            value=value,
            author=commit.author,
            commit_id=commit.commit_id,
            message=commit.message
        ))
