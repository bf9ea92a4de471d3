import asyncio
import copy
from typing import Any, Dict, List, Optional, Union

from src.document_model import parse_document
from src.history_provider import CommitRecord, HistoryProvider, HistoryUnavailable

Snapshot = Union[Dict[str, Any], str, None]


class FakeHistoryProvider(HistoryProvider):
    """
    In-memory commit graph.

    Each commit stores the full set of files as of that commit (inherited from
    its parent, updated by the files it touches). A string file value is raw
    text and is parsed on read, so malformed content can be simulated.
    Revisions listed in `failing_revisions` raise HistoryUnavailable on read,
    like a `git show` that times out or errors.
    """

    def __init__(self):
        self.branches: Dict[str, List[str]] = {}
        self.commits: Dict[str, Dict[str, Any]] = {}
        self.unavailable_refs = set()
        self.failing_revisions = set()
        self.delays: Dict[str, float] = {}
        self.content_requests: List[str] = []

    def add_commit(
            self,
            commit_id: str,
            author: str,
            files: Dict[str, Snapshot],
            refs=("translations/main",),
            parent: Optional[str] = None,
            message: str = ""
    ) -> str:
        if parent is None:
            for ref in refs:
                if self.branches.get(ref):
                    parent = self.branches[ref][-1]
                    break
        state = dict(self.commits[parent]["state"]) if parent else {}
        for path, content in files.items():
            if content is None:
                state.pop(path, None)
            else:
                state[path] = copy.deepcopy(content)

        self.commits[commit_id] = {
            "author": author,
            "message": message or f"commit {commit_id}",
            "parent": parent,
            "touched": set(files),
            "state": state,
        }
        for ref in refs:
            if ref in self.branches:
                self.branches[ref].append(commit_id)
            else:
                self.branches[ref] = self.history_of(commit_id)
        return commit_id

    def history_of(self, commit_id: Optional[str]) -> List[str]:
        chain = []
        while commit_id:
            chain.append(commit_id)
            commit_id = self.commits[commit_id]["parent"]
        return list(reversed(chain))

    async def list_refs(self, pattern: str) -> List[str]:
        prefix = pattern.rstrip("*")
        return [ref for ref in self.branches if ref.split("/", 1)[-1].startswith(prefix)]

    async def list_commits(self, ref: str, path: str) -> List[CommitRecord]:
        if ref in self.unavailable_refs or ref not in self.branches:
            raise HistoryUnavailable(f"unknown ref '{ref}'")
        records = []
        for commit_id in self.branches[ref]:
            commit = self.commits[commit_id]
            if path not in commit["touched"]:
                continue
            records.append(CommitRecord(
                commit_id=commit_id,
                author=commit["author"],
                message=commit["message"],
                ordinal=len(records),
                parent_ids=(commit["parent"],) if commit["parent"] else ()
            ))
        return records

    async def content_at(self, revision: str, path: str) -> Optional[Dict[str, Any]]:
        self.content_requests.append(revision)
        if revision in self.branches:
            revision = self.branches[revision][-1]
        if revision in self.failing_revisions:
            raise HistoryUnavailable(f"cannot read '{path}' at '{revision}'")
        if revision not in self.commits:
            return None
        if self.delays.get(revision):
            await asyncio.sleep(self.delays[revision])
        content = self.commits[revision]["state"].get(path)
        if content is None:
            return None
        if isinstance(content, str):
            return parse_document(content, source=f"{revision}:{path}")
        return copy.deepcopy(content)

    async def parent_of(self, commit: CommitRecord) -> Optional[str]:
        return commit.parent_ids[0] if commit.parent_ids else None
