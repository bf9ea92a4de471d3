import asyncio
import random
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from src.document_model import parse_document
from src.logging_config import get_logger

logger = get_logger("history")

# Field separator for `git log --format`; commit subjects never contain it.
_LOG_FIELD_SEPARATOR = "\x1f"
_LOG_FORMAT = "%H%x1f%ae%x1f%P%x1f%s"


class HistoryUnavailable(Exception):
    """Raised when the revision history cannot be listed or fetched."""


@dataclass(frozen=True)
class CommitRecord:
    """One commit that touched a document, as listed on a ref."""
    commit_id: str
    author: str
    message: str
    ordinal: int
    parent_ids: Tuple[str, ...] = field(default_factory=tuple)


class HistoryProvider(ABC):
    """
    Read-only access to the revision history of the translation documents.

    Implementations hold no state that the caller needs to share; every method
    may be called concurrently.
    """

    @abstractmethod
    async def list_refs(self, pattern: str) -> List[str]:
        """Return the ref names matching a glob pattern."""

    @abstractmethod
    async def list_commits(self, ref: str, path: str) -> List[CommitRecord]:
        """
        Return the commits on `ref` that touched `path`, oldest first.

        Raises:
            HistoryUnavailable: If the ref does not exist or the history cannot be read.
        """

    @abstractmethod
    async def content_at(self, revision: str, path: str) -> Optional[Dict[str, Any]]:
        """
        Return the document at `path` as of `revision`, or None if it did not exist.

        Raises:
            MalformedDocument: If the stored content is not a valid document.
        """

    @abstractmethod
    async def parent_of(self, commit: CommitRecord) -> Optional[str]:
        """Return the revision of the commit's first parent, or None for a root commit."""

    def author_identity(self, commit: CommitRecord) -> str:
        return commit.author


def find_repository_root(start_dir: str) -> str:
    """
    Resolve the top level of the git work tree containing `start_dir`.

    Raises:
        HistoryUnavailable: If `start_dir` is not inside a git work tree.
    """
    try:
        result = subprocess.run(
            ['git', 'rev-parse', '--show-toplevel'],
            cwd=start_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True
        )
    except (subprocess.CalledProcessError, OSError) as git_exc:
        stderr = getattr(git_exc, 'stderr', None) or str(git_exc)
        raise HistoryUnavailable(f"'{start_dir}' is not inside a git repository: {stderr.strip()}") from git_exc
    return result.stdout.strip()


async def _handle_retry(attempt: int, max_retries: int, base_delay: float, operation: str) -> bool:
    """
    Sleep with exponential backoff and jitter before the next attempt.

    Returns:
        bool: True if the operation should retry, False otherwise.
    """
    if attempt < max_retries:
        delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, 1)
        logger.info("Retrying '%s' in %.2f seconds (Attempt %d/%d)", operation, delay, attempt, max_retries)
        await asyncio.sleep(delay)
        return True
    logger.error("'%s' failed after %d attempts.", operation, max_retries)
    return False


class GitHistoryProvider(HistoryProvider):
    """
    HistoryProvider backed by a local git repository and a translations remote.

    Refs are the remote-tracking names (`<remote>/main`, `<remote>/pr/12`) and
    paths are relative to the root of the translations repository.
    """

    def __init__(
            self,
            repo_root: str,
            remote: str = "translations",
            remote_url: Optional[str] = None,
            timeout_seconds: float = 60.0,
            max_retries: int = 3,
            retry_base_delay: float = 1.0
    ):
        self.repo_root = repo_root
        self.remote = remote
        self.remote_url = remote_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    async def _run_git(self, *args: str) -> subprocess.CompletedProcess:
        command = ['git', *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.repo_root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as os_exc:
            raise HistoryUnavailable(f"Could not run git: {os_exc}") from os_exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as timeout_exc:
            process.kill()
            await process.wait()
            raise HistoryUnavailable(
                f"'{' '.join(command)}' timed out after {self.timeout_seconds} seconds"
            ) from timeout_exc

        return subprocess.CompletedProcess(
            command,
            process.returncode,
            stdout.decode('utf-8', errors='replace'),
            stderr.decode('utf-8', errors='replace')
        )

    async def _fetch_with_retry(self, *refspecs: str) -> subprocess.CompletedProcess:
        operation = f"git fetch {self.remote} {' '.join(refspecs)}".strip()
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self._run_git('fetch', self.remote, *refspecs)
                if result.returncode == 0:
                    return result
                failure = result.stderr.strip()
            except HistoryUnavailable as fetch_exc:
                failure = str(fetch_exc)
            logger.warning("'%s' failed: %s", operation, failure)
            if not await _handle_retry(attempt, self.max_retries, self.retry_base_delay, operation):
                raise HistoryUnavailable(f"'{operation}' failed: {failure}")

    async def prepare_remote(self, fetch_proposals: bool = True) -> None:
        """
        Make sure the translations remote exists and is up to date.

        Proposal branches (pull request heads) are fetched into
        `refs/remotes/<remote>/pr/*`; failing to fetch them is not an error.

        Raises:
            HistoryUnavailable: If the remote cannot be added or fetched.
        """
        remotes = await self._run_git('remote')
        if remotes.returncode != 0:
            raise HistoryUnavailable(f"Could not list git remotes: {remotes.stderr.strip()}")

        if self.remote not in remotes.stdout.splitlines():
            if not self.remote_url:
                raise HistoryUnavailable(f"Remote '{self.remote}' is missing and no URL is configured.")
            logger.info("Adding remote '%s' (%s)...", self.remote, self.remote_url)
            added = await self._run_git('remote', 'add', self.remote, self.remote_url)
            if added.returncode != 0:
                raise HistoryUnavailable(f"Could not add remote '{self.remote}': {added.stderr.strip()}")

        logger.info("Fetching '%s'...", self.remote)
        await self._fetch_with_retry()

        if fetch_proposals:
            try:
                await self._fetch_with_retry(f"refs/pull/*/head:refs/remotes/{self.remote}/pr/*")
            except HistoryUnavailable as pr_exc:
                logger.warning("Proposal branches were not fetched: %s", pr_exc)

    async def list_refs(self, pattern: str) -> List[str]:
        result = await self._run_git(
            'for-each-ref', '--format=%(refname:short)', f"refs/remotes/{self.remote}/{pattern}"
        )
        if result.returncode != 0:
            raise HistoryUnavailable(f"Could not list refs matching '{pattern}': {result.stderr.strip()}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def list_commits(self, ref: str, path: str) -> List[CommitRecord]:
        result = await self._run_git('log', ref, '--reverse', f"--format={_LOG_FORMAT}", '--', path)
        if result.returncode != 0:
            raise HistoryUnavailable(f"Could not read history of '{path}' on '{ref}': {result.stderr.strip()}")

        commits = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            commit_id, author, parents, message = (line.split(_LOG_FIELD_SEPARATOR, 3) + ['', '', ''])[:4]
            commits.append(CommitRecord(
                commit_id=commit_id,
                author=author,
                message=message,
                ordinal=len(commits),
                parent_ids=tuple(parents.split())
            ))
        return commits

    async def content_at(self, revision: str, path: str) -> Optional[Dict[str, Any]]:
        result = await self._run_git('show', f"{revision}:{path}")
        if result.returncode != 0:
            logger.debug("No content for '%s' at '%s': %s", path, revision, result.stderr.strip())
            return None
        return parse_document(result.stdout, source=f"{revision[:7]}:{path}")

    async def parent_of(self, commit: CommitRecord) -> Optional[str]:
        return commit.parent_ids[0] if commit.parent_ids else None
