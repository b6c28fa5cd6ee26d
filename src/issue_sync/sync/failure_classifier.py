"""Deterministic mapping from raw failures to the connector error taxonomy."""

from __future__ import annotations

import logging

import httpx
from sqlalchemy.exc import IntegrityError

from issue_sync.sync.errors import (
    HTTP_FORBIDDEN,
    HTTP_NOT_FOUND,
    HTTP_SERVICE_UNAVAILABLE,
    HTTP_TOO_MANY_REQUESTS,
    HTTP_UNAUTHORIZED,
    ConnectorError,
    OrchestrationError,
    SourceApiError,
    StoreError,
    StoreErrorKind,
    ValidationError,
)

logger = logging.getLogger(__name__)

FAILURE_CLASSIFIER_VERSION = 1

_NETWORK_PATTERNS: tuple[str, ...] = (
    "connection",
    "timeout",
    "timed out",
    "network",
    "socket",
)
_STORE_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthenticated",
    "authentication",
    "credential",
    "unauthorized",
    "invalid token",
)
_STORE_PERMISSION_PATTERNS: tuple[str, ...] = (
    "permission denied",
    "forbidden",
    "readonly database",
    "read-only",
)
_STORE_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource exhausted",
    "resource_exhausted",
    "disk is full",
    "database or disk is full",
)
_STORE_NETWORK_PATTERNS: tuple[str, ...] = (
    "unavailable",
    "deadline",
    "database is locked",
    "database is busy",
    *_NETWORK_PATTERNS,
)
_STORE_INVALID_PATTERNS: tuple[str, ...] = (
    "invalid",
    "argument",
    "constraint",
)
_STORE_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "not found",
    "no such table",
    "unable to open database",
)
_STORE_RULES: tuple[tuple[StoreErrorKind, tuple[str, ...]], ...] = (
    (StoreErrorKind.AUTH_FAILED, _STORE_AUTH_PATTERNS),
    (StoreErrorKind.PERMISSION_DENIED, _STORE_PERMISSION_PATTERNS),
    (StoreErrorKind.QUOTA_EXCEEDED, _STORE_QUOTA_PATTERNS),
    (StoreErrorKind.NETWORK_ERROR, _STORE_NETWORK_PATTERNS),
    (StoreErrorKind.INVALID_DOCUMENT, _STORE_INVALID_PATTERNS),
    (StoreErrorKind.COLLECTION_NOT_FOUND, _STORE_NOT_FOUND_PATTERNS),
)

_STORE_HINTS: dict[StoreErrorKind, str] = {
    StoreErrorKind.AUTH_FAILED: "Check the store credentials and database file access.",
    StoreErrorKind.PERMISSION_DENIED: "Verify the process can write to the database path.",
    StoreErrorKind.QUOTA_EXCEEDED: "Free disk space or lower the sync limit, then retry.",
    StoreErrorKind.NETWORK_ERROR: "The store is busy or unreachable; writes will be retried.",
    StoreErrorKind.INVALID_DOCUMENT: "Inspect the document payload for invalid fields.",
    StoreErrorKind.COLLECTION_NOT_FOUND: (
        "Run a sync to initialize the schema, or check ISSUE_SYNC_DB_PATH."
    ),
    StoreErrorKind.UNKNOWN: "Check the logs for the underlying store error.",
}


def classify_http_status(
    status: int,
    *,
    retry_after: int | None = None,
    context: str = "",
) -> SourceApiError:
    """Map an HTTP error status to a source API error with a canonical message."""

    if status == HTTP_UNAUTHORIZED:
        return SourceApiError.authentication_failed()
    if status == HTTP_FORBIDDEN:
        return SourceApiError.authorization_failed()
    if status == HTTP_TOO_MANY_REQUESTS:
        return SourceApiError.rate_limit_exceeded(retry_after)
    if status == HTTP_NOT_FOUND:
        return SourceApiError.not_found(context)
    if 500 <= status <= 599:  # noqa: PLR2004
        return SourceApiError(message=f"Source server error: HTTP {status}", status=status)
    return SourceApiError(message=f"Source API error: HTTP {status}", status=status)


def classify_source_failure(error: BaseException) -> ConnectorError:
    """Classify a failure raised near the source; unknown shapes are terminal."""

    if isinstance(error, ConnectorError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return classify_http_status(
            response.status_code,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            context=str(error.request.url),
        )
    if isinstance(error, httpx.TransportError) or _first_match(str(error), _NETWORK_PATTERNS):
        return SourceApiError(
            message=f"Network error: {error}",
            status=HTTP_SERVICE_UNAVAILABLE,
        )
    return SourceApiError(message=f"Unexpected error: {error}")


def classify_store_failure(error: BaseException) -> ConnectorError:
    """Classify a failure raised near the store; unknown shapes are transient."""

    if isinstance(error, ConnectorError):
        return error
    detail = _error_detail(error)
    if isinstance(error, IntegrityError):
        return StoreError.from_kind(StoreErrorKind.INVALID_DOCUMENT, detail)

    haystack = detail.lower()
    for kind, patterns in _STORE_RULES:
        if _first_match(haystack, patterns) is not None:
            return StoreError.from_kind(kind, detail)
    return StoreError.from_kind(StoreErrorKind.UNKNOWN, detail)


def classify_pipeline_failure(error: BaseException) -> ConnectorError:
    """Classify a failure escaping a pipeline step; unknown shapes are incidental."""

    if isinstance(error, ConnectorError):
        return error
    return OrchestrationError(message=str(error) or type(error).__name__)


def troubleshooting_hint(error: ConnectorError) -> str:
    """Human-readable guidance for an operator facing this error."""

    match error:
        case SourceApiError(status=401):
            return "Check ISSUE_SYNC_SOURCE_TOKEN; the token is missing, invalid, or expired."
        case SourceApiError(status=403):
            return "The token lacks permissions for this repository."
        case SourceApiError(status=404):
            return "Verify the owner and repository name."
        case SourceApiError(status=429):
            return "Rate limit hit; wait for the reset window or use an authenticated token."
        case SourceApiError(status=None):
            return "Unexpected source failure; check the logs for details."
        case SourceApiError() if error.retryable:
            return "The source API is failing; the request will be retried."
        case SourceApiError():
            return "The source rejected the request; check the repository and parameters."
        case StoreError(kind=kind):
            return _STORE_HINTS[kind]
        case ValidationError():
            return "The source returned records that failed validation; inspect the payload."
        case OrchestrationError(validation_errors=errors) if errors:
            return "Fix the reported validation errors before retrying."
        case _:
            return "Transient pipeline failure; the sync can be retried."


def log_structured_error(error: ConnectorError, *, operation: str) -> None:
    """Emit one structured log line for a classified error."""

    if error.retryable:
        logger.warning(
            "RETRYABLE_ERROR operation=%s code=%s message=%s details=%s",
            operation,
            error.code,
            error.message,
            error.details,
        )
    else:
        logger.error(
            "FATAL_ERROR operation=%s code=%s message=%s details=%s",
            operation,
            error.code,
            error.message,
            error.details,
        )


def parse_retry_after(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return None


def _error_detail(error: BaseException) -> str:
    original = getattr(error, "orig", None)
    if original is not None:
        return str(original)
    return str(error) or type(error).__name__


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    lowered = haystack.lower()
    for pattern in patterns:
        if pattern in lowered:
            return pattern
    return None
