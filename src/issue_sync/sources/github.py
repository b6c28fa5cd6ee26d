"""GitHub REST API issue source."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from issue_sync import __version__
from issue_sync.config import SourceSettings
from issue_sync.storage.common import from_iso
from issue_sync.sync.errors import HTTP_FORBIDDEN, HTTP_TOO_MANY_REQUESTS, SourceApiError
from issue_sync.sync.failure_classifier import (
    classify_http_status,
    classify_source_failure,
    parse_retry_after,
)
from issue_sync.sync.models import SourceRecord

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"issue-sync/{__version__}"
GITHUB_API_VERSION = "2022-11-28"


@dataclass(slots=True)
class GitHubSourceConfig:
    """GitHub client configuration."""

    api_url: str = "https://api.github.com"
    token: str | None = None
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_settings(cls, settings: SourceSettings) -> GitHubSourceConfig:
        return cls(
            api_url=settings.api_url,
            token=settings.token,
            request_timeout_seconds=settings.request_timeout_seconds,
            connect_timeout_seconds=settings.connect_timeout_seconds,
        )


class GitHubSourceClient:
    """Fetches repository issues, mapping failures into ``SourceApiError``."""

    name = "github"

    def __init__(
        self,
        config: GitHubSourceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": config.user_agent,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            timeout=httpx.Timeout(
                config.request_timeout_seconds,
                connect=config.connect_timeout_seconds,
            ),
            headers=headers,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> GitHubSourceClient:
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_records(self, parts: tuple[str, ...], limit: int) -> list[SourceRecord]:
        owner, repo = _split_parts(parts)
        try:
            response = await self._client.get(
                f"/repos/{owner}/{repo}/issues",
                params={
                    "state": "all",
                    "sort": "created",
                    "direction": "desc",
                    "per_page": limit,
                    "page": 1,
                },
            )
        except httpx.HTTPError as error:
            logger.warning("Transport error fetching issues for %s/%s: %s", owner, repo, error)
            raise classify_source_failure(error) from error

        if response.is_error:
            raise _status_error(response, context=f"{owner}/{repo}")

        try:
            payload = response.json()
        except ValueError as error:
            raise SourceApiError(
                message=f"Invalid JSON in issues response for {owner}/{repo}",
                details={"status": response.status_code},
            ) from error
        if not isinstance(payload, list):
            raise SourceApiError(
                message=f"Unexpected issues response shape for {owner}/{repo}",
                details={"type": type(payload).__name__},
            )

        records = [_parse_issue(item) for item in payload[:limit] if isinstance(item, dict)]
        logger.info("Fetched %d issues from %s/%s", len(records), owner, repo)
        return records


def _split_parts(parts: tuple[str, ...]) -> tuple[str, str]:
    if len(parts) != 2:  # noqa: PLR2004
        raise ValueError(f"Expected (owner, repo) identifier, got {parts!r}")
    return parts[0].strip(), parts[1].strip()


def _status_error(response: httpx.Response, *, context: str) -> SourceApiError:
    retry_after = parse_retry_after(response.headers.get("Retry-After"))
    # GitHub signals primary rate limits as 403 with an exhausted quota header.
    if (
        response.status_code == HTTP_FORBIDDEN
        and response.headers.get("X-RateLimit-Remaining") == "0"
    ):
        return classify_http_status(HTTP_TOO_MANY_REQUESTS, retry_after=retry_after)
    return classify_http_status(response.status_code, retry_after=retry_after, context=context)


def _parse_issue(item: dict[str, object]) -> SourceRecord:
    return SourceRecord(
        id=_as_int(item.get("id")),
        title=_as_str(item.get("title")),
        state=_as_str(item.get("state")),
        url=_as_str(item.get("html_url")),
        created_at=_as_datetime(item.get("created_at")),
    )


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _as_datetime(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return from_iso(value)
    except ValueError:
        return None
