import asyncio
import json
import os

import pytest
from aiolimiter import AsyncLimiter

from src.app_config import AppConfig
from tests.fakes import FakeHistoryProvider


@pytest.fixture
def fake_provider():
    return FakeHistoryProvider()


@pytest.fixture
def fetch_limits():
    """Semaphore and rate limiter generous enough to never throttle a test."""
    return asyncio.Semaphore(4), AsyncLimiter(max_rate=1000, time_period=1)


@pytest.fixture
def locales_dir(tmp_path):
    path = tmp_path / "locales"
    path.mkdir()
    return path


@pytest.fixture
def write_locale(locales_dir):
    """Write a locale document into the temporary locales directory."""
    def _write(locale, document):
        file_path = locales_dir / f"{locale}.json"
        if isinstance(document, str):
            file_path.write_text(document, encoding="utf-8")
        else:
            file_path.write_text(json.dumps(document, indent=4, ensure_ascii=False) + "\n", encoding="utf-8")
        return file_path
    return _write


@pytest.fixture
def make_config(tmp_path, locales_dir):
    """Factory for AppConfig pointing at the temporary locales directory."""
    def _make(**overrides):
        values = dict(
            project_root=str(tmp_path),
            target_project_root=str(tmp_path),
            locales_dir=str(locales_dir),
            reference_locale="en",
            document_extension=".json",
            json_indent=4,
            translations_remote="translations",
            translations_repo_url="https://example.invalid/translations.git",
            primary_branch="main",
            proposal_ref_pattern="pr/*",
            fetch_proposals=True,
            automated_author_patterns=["program-sam", "vanemelensam", "samvanemelen"],
            dry_run=True,
            verbose=False,
            max_concurrent_fetches=4,
            fetch_rate_limit=1000,
            fetch_rate_period=1.0,
            git_timeout_seconds=30,
            git_max_retries=1,
            report_file_path=os.path.join(str(tmp_path), "logs", "restore_report.md"),
            report_json_path=None,
        )
        values.update(overrides)
        return AppConfig(**values)
    return _make
