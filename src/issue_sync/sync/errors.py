"""Typed failure taxonomy that drives retry decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVICE_UNAVAILABLE = 503
DEFAULT_RETRY_AFTER_SECONDS = 60


class StoreErrorKind(str, Enum):
    """Store failure categories."""

    AUTH_FAILED = "auth_failed"
    PERMISSION_DENIED = "permission_denied"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_ERROR = "network_error"
    INVALID_DOCUMENT = "invalid_document"
    COLLECTION_NOT_FOUND = "collection_not_found"
    UNKNOWN = "unknown"


_RETRYABLE_STORE_KINDS = frozenset(
    {
        StoreErrorKind.QUOTA_EXCEEDED,
        StoreErrorKind.NETWORK_ERROR,
        StoreErrorKind.UNKNOWN,
    },
)
_STORE_KIND_PREFIXES: dict[StoreErrorKind, str] = {
    StoreErrorKind.AUTH_FAILED: "Store authentication failed",
    StoreErrorKind.PERMISSION_DENIED: "Store permission denied",
    StoreErrorKind.QUOTA_EXCEEDED: "Store quota exceeded",
    StoreErrorKind.NETWORK_ERROR: "Store network error",
    StoreErrorKind.INVALID_DOCUMENT: "Invalid document",
    StoreErrorKind.COLLECTION_NOT_FOUND: "Collection not found",
    StoreErrorKind.UNKNOWN: "Store error",
}


@dataclass(slots=True)
class ConnectorError(Exception):
    """Base classified failure with a stable code."""

    message: str
    code: str = "CONNECTOR_ERROR"
    details: dict[str, object] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    @property
    def retryable(self) -> bool:
        return False


@dataclass(slots=True)
class SourceApiError(ConnectorError):
    """Source API failure classified by HTTP status."""

    code: str = "SOURCE_API_ERROR"
    status: int | None = None
    retry_after: int | None = None

    def __post_init__(self) -> None:
        if self.retry_after is not None and self.code == "SOURCE_API_ERROR":
            self.code = "SOURCE_RATE_LIMIT"

    @property
    def retryable(self) -> bool:
        if self.status is None:
            return False
        return self.status == HTTP_TOO_MANY_REQUESTS or 500 <= self.status <= 599  # noqa: PLR2004

    @classmethod
    def authentication_failed(cls) -> SourceApiError:
        return cls(
            message="Source authentication failed: Invalid or expired token",
            status=HTTP_UNAUTHORIZED,
        )

    @classmethod
    def authorization_failed(cls) -> SourceApiError:
        return cls(
            message="Source authorization failed: Insufficient permissions",
            status=HTTP_FORBIDDEN,
        )

    @classmethod
    def rate_limit_exceeded(cls, retry_after: int | None = None) -> SourceApiError:
        wait_seconds = DEFAULT_RETRY_AFTER_SECONDS if retry_after is None else retry_after
        return cls(
            message=f"Source rate limit exceeded. Retry after {wait_seconds} seconds",
            status=HTTP_TOO_MANY_REQUESTS,
            retry_after=wait_seconds,
        )

    @classmethod
    def not_found(cls, context: str) -> SourceApiError:
        return cls(message=f"Source resource not found: {context}", status=HTTP_NOT_FOUND)


@dataclass(slots=True)
class StoreError(ConnectorError):
    """Document store failure classified by kind."""

    code: str = "STORE_ERROR"
    kind: StoreErrorKind = StoreErrorKind.UNKNOWN

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE_STORE_KINDS

    @classmethod
    def from_kind(cls, kind: StoreErrorKind, detail: str) -> StoreError:
        """Build error whose message starts with the kind-specific prefix."""

        return cls(message=f"{_STORE_KIND_PREFIXES[kind]}: {detail}", kind=kind)


@dataclass(slots=True)
class ValidationError(ConnectorError):
    """Record rejected by the transformer. Never retryable."""

    code: str = "VALIDATION_ERROR"


@dataclass(slots=True)
class OrchestrationError(ConnectorError):
    """Pipeline-level failure; retryable unless it carries validation errors."""

    code: str = "SYNC_ERROR"
    validation_errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.validation_errors and self.code == "SYNC_ERROR":
            self.code = "SYNC_VALIDATION_ERROR"

    @property
    def retryable(self) -> bool:
        return not self.validation_errors

    @classmethod
    def validation_failed(cls, errors: list[str] | tuple[str, ...]) -> OrchestrationError:
        return cls(
            message=f"Sync validation failed with {len(errors)} errors",
            validation_errors=tuple(errors),
        )

    @classmethod
    def configuration_error(cls, detail: str) -> OrchestrationError:
        return cls(message=f"Configuration error: {detail}", code="SYNC_CONFIGURATION_ERROR")
