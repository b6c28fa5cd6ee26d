from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import allure
import pytest

from issue_sync.config import RetrySettings, Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def test_defaults_match_documented_policies() -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".issue_sync.db")
    assert settings.source.api_url == "https://api.github.com"
    assert settings.source.token is None
    assert settings.source_retry == RetrySettings(3, 1.0, 2.0, 30.0)
    assert settings.store_retry == RetrySettings(3, 0.5, 1.5, 10.0)
    assert settings.pipeline_retry == RetrySettings(2, 2.0, 1.0, 2.0)
    assert settings.cache.max_entries == 2000
    assert settings.cache.ttl_seconds == 1800
    assert settings.cache.enabled is True
    assert settings.sync.default_limit == 5
    assert settings.health.max_consecutive_failures == 5
    settings.validate_for_sync()


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ISSUE_SYNC_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("ISSUE_SYNC_SOURCE_TOKEN", "  secret  ")
    monkeypatch.setenv("ISSUE_SYNC_STORE_RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("ISSUE_SYNC_PIPELINE_RETRY_INITIAL_DELAY_SECONDS", "0.25")
    monkeypatch.setenv("ISSUE_SYNC_CACHE_ENABLED", "off")
    monkeypatch.setenv("ISSUE_SYNC_MAX_CONCURRENCY", "4")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "env.db"
    assert settings.source.token == "secret"
    assert settings.store_retry.max_attempts == 5
    assert settings.store_retry.initial_delay_seconds == 0.5
    assert settings.pipeline_retry.initial_delay_seconds == 0.25
    assert settings.cache.enabled is False
    assert settings.sync.max_concurrency == 4


def test_explicit_db_path_wins_over_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ISSUE_SYNC_DB_PATH", str(tmp_path / "env.db"))

    assert Settings.from_env(db_path=tmp_path / "cli.db").db_path == tmp_path / "cli.db"


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("ISSUE_SYNC_CACHE_ENABLED", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for ISSUE_SYNC_CACHE_ENABLED"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("mutate", "message"),
    [
        (
            lambda s: replace(s, source=replace(s.source, api_url="ftp://example.com")),
            "Invalid ISSUE_SYNC_SOURCE_API_URL",
        ),
        (
            lambda s: replace(s, source=replace(s.source, request_timeout_seconds=0)),
            "ISSUE_SYNC_SOURCE_TIMEOUT_SECONDS must be > 0",
        ),
        (
            lambda s: replace(s, sync=replace(s.sync, default_limit=101)),
            "ISSUE_SYNC_DEFAULT_LIMIT must be between 1 and 100",
        ),
        (
            lambda s: replace(s, sync=replace(s.sync, max_concurrency=0)),
            "ISSUE_SYNC_MAX_CONCURRENCY must be between 1 and 50",
        ),
        (
            lambda s: replace(s, store=replace(s.store, collection_name="  ")),
            "ISSUE_SYNC_STORE_COLLECTION cannot be empty",
        ),
        (
            lambda s: replace(s, store_retry=replace(s.store_retry, max_attempts=0)),
            "ISSUE_SYNC_STORE_RETRY_MAX_ATTEMPTS must be between 1 and 10",
        ),
        (
            lambda s: replace(s, source_retry=replace(s.source_retry, multiplier=0.5)),
            "ISSUE_SYNC_SOURCE_RETRY_MULTIPLIER must be >= 1",
        ),
        (
            lambda s: replace(
                s,
                pipeline_retry=replace(s.pipeline_retry, initial_delay_seconds=-1),
            ),
            "ISSUE_SYNC_PIPELINE_RETRY delays must be >= 0",
        ),
        (
            lambda s: replace(s, cache=replace(s.cache, max_entries=0)),
            "ISSUE_SYNC_CACHE_MAX_ENTRIES must be a positive integer",
        ),
        (
            lambda s: replace(s, health=replace(s.health, max_consecutive_failures=0)),
            "ISSUE_SYNC_HEALTH_MAX_CONSECUTIVE_FAILURES must be > 0",
        ),
    ],
)
def test_validate_for_sync_rejects_bad_values(mutate, message: str) -> None:
    settings = mutate(Settings())

    with pytest.raises(ValueError, match=message):
        settings.validate_for_sync()
