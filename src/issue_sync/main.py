"""CLI entrypoint for issue-sync."""

import logging
from pathlib import Path

import rich_click as click

from issue_sync import __version__
from issue_sync.config import MAX_SYNC_LIMIT, MIN_SYNC_LIMIT
from issue_sync.sync.controllers import (
    ExplainErrorCommand,
    SyncCliController,
    SyncRunCommand,
    SyncStatsCommand,
)
from issue_sync.sync.correlation import configure_logging

click.rich_click.USE_MARKDOWN = True
SYNC_CONTROLLER = SyncCliController()


@click.group()
@click.version_option(version=__version__, prog_name="issue-sync")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def issue_sync(verbose: bool) -> None:
    """Sync repository issues into a local document store."""

    configure_logging(logging.DEBUG if verbose else logging.INFO)


@issue_sync.group()
def sync() -> None:
    """Sync commands."""


@sync.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--owner", required=True, help="Repository owner.")
@click.option("--repo", required=True, help="Repository name.")
@click.option(
    "--limit",
    type=click.IntRange(min=MIN_SYNC_LIMIT, max=MAX_SYNC_LIMIT),
    default=None,
    help="How many issues to fetch. Defaults to ISSUE_SYNC_DEFAULT_LIMIT.",
)
def sync_run(db_path: Path | None, owner: str, repo: str, limit: int | None) -> None:
    """Fetch issues and upsert them into the store.

    Exits non-zero when the run ends in **Failure**; a partial failure still exits 0.
    """

    try:
        result = SYNC_CONTROLLER.run(
            SyncRunCommand(db_path=db_path, owner=owner, repo=repo, limit=limit),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Sync failed.")


@sync.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--recent-runs",
    type=click.IntRange(min=1, max=50),
    default=5,
    show_default=True,
    help="How many latest runs to display and evaluate health from.",
)
def sync_stats(db_path: Path | None, recent_runs: int) -> None:
    """Show sync health and recent runs."""

    _emit_lines(
        SYNC_CONTROLLER.stats(SyncStatsCommand(db_path=db_path, recent_runs=recent_runs)),
    )


@issue_sync.group()
def errors() -> None:
    """Error taxonomy commands."""


@errors.command("explain")
@click.option("--status", type=click.IntRange(min=100, max=599), default=None, help="HTTP status.")
@click.option("--store-message", default=None, help="Raw store error message.")
def errors_explain(status: int | None, store_message: str | None) -> None:
    """Classify a source status or store message and print troubleshooting guidance."""

    try:
        lines = SYNC_CONTROLLER.explain(
            ExplainErrorCommand(status=status, store_message=store_message),
        )
    except ValueError as error:
        raise click.UsageError(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    issue_sync()
