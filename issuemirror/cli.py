"""Command-line entry point for one-off mirror runs."""

from __future__ import annotations

import argparse
import asyncio
import os
import typing as typ

from issuemirror.common.slug import parse_repo_slug
from issuemirror.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from issuemirror.runtime import open_syncer

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import contextlib

    from issuemirror.mirror.syncer import GitHubIssueSyncer

logger = get_logger(__name__)


def _repo_name(value: str) -> str:
    try:
        parse_repo_slug(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        msg = f"expected an integer, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from exc
    if number < 1:
        msg = f"expected a positive integer, got {number}"
        raise argparse.ArgumentTypeError(msg)
    return number


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the ``issuemirror`` command."""
    parser = argparse.ArgumentParser(
        prog="issuemirror", description="Mirror GitHub issues into forum topics."
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL of the forum database (default: ISSUEMIRROR_DATABASE_URL)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("ISSUEMIRROR_LOG_LEVEL", "INFO"),
        help="Log level (default: ISSUEMIRROR_LOG_LEVEL or INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sync_repo = commands.add_parser("sync-repo", help="Mirror every issue of a repo")
    sync_repo.add_argument("repo", type=_repo_name, help="Repository as OWNER/NAME")

    sync_issue = commands.add_parser("sync-issue", help="Mirror a single issue")
    sync_issue.add_argument("repo", type=_repo_name, help="Repository as OWNER/NAME")
    sync_issue.add_argument("number", type=_positive_int, help="Issue number")
    sync_issue.add_argument(
        "--repo-id",
        type=_positive_int,
        default=None,
        help="GitHub repository id; required to create the repo's category",
    )

    commands.add_parser("sync-all", help="Mirror every repo with a mapped category")
    return parser


async def _run_command(args: argparse.Namespace, syncer: GitHubIssueSyncer) -> None:
    match args.command:
        case "sync-repo":
            result = await syncer.sync_repo(args.repo)
            log_info(
                logger,
                "Synced %d issues of %s (%d topics created, %d events applied)",
                result.issues_synced,
                result.repo_name,
                result.topics_created,
                result.events_applied,
            )
        case "sync-issue":
            issue = await syncer.sync_issue(args.repo, args.number, args.repo_id)
            log_info(
                logger,
                "Synced %s#%d into topic %d (%d events applied)",
                issue.repo_name,
                issue.issue_number,
                issue.topic_id,
                issue.events_applied,
            )
        case "sync-all":
            results = await syncer.sync_known_repos()
            log_info(logger, "Synced %d repositories", len(results))
        case _:  # pragma: no cover - argparse rejects unknown commands
            msg = f"unknown command {args.command!r}"
            raise ValueError(msg)


def main(
    argv: list[str] | None = None,
    *,
    opener: cabc.Callable[
        [str | None], contextlib.AbstractAsyncContextManager[GitHubIssueSyncer]
    ] = open_syncer,
) -> int:
    """Run a mirror command.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.
    opener
        Factory yielding the syncer; replaced in tests.

    Returns
    -------
    int
        Exit code: 0 on success, 1 when the run failed.

    """
    args = build_parser().parse_args(argv)

    normalized_level, invalid_level = configure_logging(args.log_level, force=True)
    if invalid_level:
        log_warning(
            logger,
            "Invalid ISSUEMIRROR_LOG_LEVEL %r, falling back to %s",
            args.log_level,
            normalized_level,
        )

    async def run() -> None:
        async with opener(args.database_url) as syncer:
            await _run_command(args, syncer)

    try:
        asyncio.run(run())
    except Exception as exc:  # noqa: BLE001 - report any failure as exit code 1
        log_error(logger, "Mirror run failed: %s: %s", type(exc).__name__, exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
