"""Runtime configuration for the issue sync engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

MIN_SYNC_LIMIT = 1
MAX_SYNC_LIMIT = 100
MAX_CONCURRENCY = 50
MAX_RETRY_ATTEMPTS = 10


@dataclass(slots=True)
class SourceSettings:
    """Source API client settings."""

    api_url: str = "https://api.github.com"
    token: str | None = None
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0


@dataclass(slots=True)
class RetrySettings:
    """Attempt budget and backoff shape for one operation class."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 30.0


@dataclass(slots=True)
class StoreSettings:
    """Document store settings."""

    collection_name: str = "issues"
    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class CacheSettings:
    """Existence-check cache settings."""

    max_entries: int = 2_000
    ttl_seconds: float = 1_800.0
    enabled: bool = True


@dataclass(slots=True)
class SyncSettings:
    """Sync run settings."""

    default_limit: int = 5
    max_concurrency: int = 10


@dataclass(slots=True)
class HealthSettings:
    """Thresholds for sync health evaluation."""

    max_consecutive_failures: int = 5
    max_success_age_seconds: int = 3_600


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".issue_sync.db")
    source: SourceSettings = field(default_factory=SourceSettings)
    source_retry: RetrySettings = field(default_factory=RetrySettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    store_retry: RetrySettings = field(
        default_factory=lambda: RetrySettings(
            max_attempts=3,
            initial_delay_seconds=0.5,
            multiplier=1.5,
            max_delay_seconds=10.0,
        ),
    )
    pipeline_retry: RetrySettings = field(
        default_factory=lambda: RetrySettings(
            max_attempts=2,
            initial_delay_seconds=2.0,
            multiplier=1.0,
            max_delay_seconds=2.0,
        ),
    )
    cache: CacheSettings = field(default_factory=CacheSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    health: HealthSettings = field(default_factory=HealthSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("ISSUE_SYNC_DB_PATH", ".issue_sync.db")),
            source=SourceSettings(
                api_url=os.getenv("ISSUE_SYNC_SOURCE_API_URL", "https://api.github.com"),
                token=os.getenv("ISSUE_SYNC_SOURCE_TOKEN", "").strip() or None,
                request_timeout_seconds=float(
                    os.getenv("ISSUE_SYNC_SOURCE_TIMEOUT_SECONDS", "30.0"),
                ),
                connect_timeout_seconds=float(
                    os.getenv("ISSUE_SYNC_SOURCE_CONNECT_TIMEOUT_SECONDS", "10.0"),
                ),
            ),
            source_retry=_retry_from_env("SOURCE", RetrySettings()),
            store=StoreSettings(
                collection_name=os.getenv("ISSUE_SYNC_STORE_COLLECTION", "issues"),
                busy_timeout_ms=int(os.getenv("ISSUE_SYNC_STORE_BUSY_TIMEOUT_MS", "5000")),
            ),
            store_retry=_retry_from_env(
                "STORE",
                RetrySettings(
                    max_attempts=3,
                    initial_delay_seconds=0.5,
                    multiplier=1.5,
                    max_delay_seconds=10.0,
                ),
            ),
            pipeline_retry=_retry_from_env(
                "PIPELINE",
                RetrySettings(
                    max_attempts=2,
                    initial_delay_seconds=2.0,
                    multiplier=1.0,
                    max_delay_seconds=2.0,
                ),
            ),
            cache=CacheSettings(
                max_entries=int(os.getenv("ISSUE_SYNC_CACHE_MAX_ENTRIES", "2000")),
                ttl_seconds=float(os.getenv("ISSUE_SYNC_CACHE_TTL_SECONDS", "1800")),
                enabled=_env_bool("ISSUE_SYNC_CACHE_ENABLED", default=True),
            ),
            sync=SyncSettings(
                default_limit=int(os.getenv("ISSUE_SYNC_DEFAULT_LIMIT", "5")),
                max_concurrency=int(os.getenv("ISSUE_SYNC_MAX_CONCURRENCY", "10")),
            ),
            health=HealthSettings(
                max_consecutive_failures=int(
                    os.getenv("ISSUE_SYNC_HEALTH_MAX_CONSECUTIVE_FAILURES", "5"),
                ),
                max_success_age_seconds=int(
                    os.getenv("ISSUE_SYNC_HEALTH_MAX_SUCCESS_AGE_SECONDS", "3600"),
                ),
            ),
        )

    def validate_for_sync(self) -> None:
        """Raise configuration error if sync settings are missing or invalid."""

        parsed = urlparse(self.source.api_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "Invalid ISSUE_SYNC_SOURCE_API_URL: "
                f"{self.source.api_url!r}. Expected an absolute http:// or https:// URL.",
            )
        if self.source.request_timeout_seconds <= 0:
            raise ValueError("ISSUE_SYNC_SOURCE_TIMEOUT_SECONDS must be > 0.")
        if not MIN_SYNC_LIMIT <= self.sync.default_limit <= MAX_SYNC_LIMIT:
            raise ValueError(
                f"ISSUE_SYNC_DEFAULT_LIMIT must be between {MIN_SYNC_LIMIT} and {MAX_SYNC_LIMIT}.",
            )
        if not 1 <= self.sync.max_concurrency <= MAX_CONCURRENCY:
            raise ValueError(f"ISSUE_SYNC_MAX_CONCURRENCY must be between 1 and {MAX_CONCURRENCY}.")
        if not self.store.collection_name.strip():
            raise ValueError("ISSUE_SYNC_STORE_COLLECTION cannot be empty.")
        for prefix, retry in (
            ("SOURCE", self.source_retry),
            ("STORE", self.store_retry),
            ("PIPELINE", self.pipeline_retry),
        ):
            _validate_retry(prefix, retry)
        if self.cache.max_entries <= 0:
            raise ValueError("ISSUE_SYNC_CACHE_MAX_ENTRIES must be a positive integer.")
        if self.cache.ttl_seconds <= 0:
            raise ValueError("ISSUE_SYNC_CACHE_TTL_SECONDS must be > 0.")
        if self.health.max_consecutive_failures <= 0:
            raise ValueError("ISSUE_SYNC_HEALTH_MAX_CONSECUTIVE_FAILURES must be > 0.")


def _retry_from_env(prefix: str, defaults: RetrySettings) -> RetrySettings:
    return RetrySettings(
        max_attempts=int(
            os.getenv(f"ISSUE_SYNC_{prefix}_RETRY_MAX_ATTEMPTS", str(defaults.max_attempts)),
        ),
        initial_delay_seconds=float(
            os.getenv(
                f"ISSUE_SYNC_{prefix}_RETRY_INITIAL_DELAY_SECONDS",
                str(defaults.initial_delay_seconds),
            ),
        ),
        multiplier=float(
            os.getenv(f"ISSUE_SYNC_{prefix}_RETRY_MULTIPLIER", str(defaults.multiplier)),
        ),
        max_delay_seconds=float(
            os.getenv(
                f"ISSUE_SYNC_{prefix}_RETRY_MAX_DELAY_SECONDS",
                str(defaults.max_delay_seconds),
            ),
        ),
    )


def _validate_retry(prefix: str, retry: RetrySettings) -> None:
    if not 1 <= retry.max_attempts <= MAX_RETRY_ATTEMPTS:
        raise ValueError(
            f"ISSUE_SYNC_{prefix}_RETRY_MAX_ATTEMPTS must be between 1 and {MAX_RETRY_ATTEMPTS}.",
        )
    if retry.initial_delay_seconds < 0 or retry.max_delay_seconds < 0:
        raise ValueError(f"ISSUE_SYNC_{prefix}_RETRY delays must be >= 0.")
    if retry.multiplier < 1:
        raise ValueError(f"ISSUE_SYNC_{prefix}_RETRY_MULTIPLIER must be >= 1.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
