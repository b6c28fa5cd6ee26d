"""Shared test fixtures."""

from __future__ import annotations

import logging
import os
from dataclasses import replace

import pytest

from issue_sync.config import RetrySettings, Settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop ISSUE_SYNC_* variables leaking in from the developer shell."""
    for name in list(os.environ):
        if name.startswith("ISSUE_SYNC_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers installed by CLI invocations so later tests log through caplog only."""
    package_logger = logging.getLogger("issue_sync")
    level = package_logger.level
    yield
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(level)


@pytest.fixture()
def instant_retries(monkeypatch):
    """Monkeypatch Settings.from_env so retry policies never wait."""
    original_from_env = Settings.from_env

    def _patched_from_env(db_path=None):
        settings = original_from_env(db_path=db_path)
        return replace(
            settings,
            source_retry=_no_delay(settings.source_retry),
            store_retry=_no_delay(settings.store_retry),
            pipeline_retry=_no_delay(settings.pipeline_retry),
        )

    monkeypatch.setattr(Settings, "from_env", staticmethod(_patched_from_env))


def _no_delay(retry: RetrySettings) -> RetrySettings:
    return replace(retry, initial_delay_seconds=0.0, max_delay_seconds=0.0)
