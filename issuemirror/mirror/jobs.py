"""Dramatiq actors for background mirroring.

Usage
-----
Queue a single issue:

>>> sync_issue_job.send("owner/name", 101, repo_id=42)

Queue a repository backfill:

>>> sync_repo_job.send("owner/name")

Mirror a new forum post back to GitHub:

>>> mirror_post_job.send(1234)

Each actor opens its own engine and GitHub client for the duration of the
call. ``database_url`` defaults to ``ISSUEMIRROR_DATABASE_URL``.
"""

from __future__ import annotations

import asyncio
import functools
import os
import sys
import typing as typ

import dramatiq
from dramatiq.brokers.stub import StubBroker

from issuemirror.logging import get_logger, log_exception
from issuemirror.runtime import open_syncer

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .syncer import GitHubIssueSyncer

STUB_BROKER_ENV = "ISSUEMIRROR_ALLOW_STUB_BROKER"
_PYTEST_ENV_KEYS = ("PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER", "PYTEST_ADDOPTS")


def stub_broker_allowed() -> bool:
    """Return True when mirror jobs may run on an in-memory StubBroker.

    That is the case when ``ISSUEMIRROR_ALLOW_STUB_BROKER`` is truthy or the
    process is a pytest run.
    """
    if os.environ.get(STUB_BROKER_ENV, "").strip().lower() in {"1", "true", "yes"}:
        return True
    return "pytest" in sys.modules or any(key in os.environ for key in _PYTEST_ENV_KEYS)


@functools.cache
def job_broker() -> dramatiq.Broker:
    """Return the broker the mirror actors bind to.

    Actors are bound when declared, so this runs before the first
    ``@dramatiq.actor`` below. An already configured broker is kept;
    otherwise a StubBroker is installed where allowed.

    Raises
    ------
    RuntimeError
        If no broker is configured and a stub broker is not allowed.

    """
    try:
        return dramatiq.get_broker()
    except (ImportError, LookupError):
        # The implicit RabbitMQ default is unavailable without pika.
        pass
    if not stub_broker_allowed():
        msg = (
            "No Dramatiq broker configured for mirror jobs; "
            f"set {STUB_BROKER_ENV}=1 for local runs or configure a broker."
        )
        raise RuntimeError(msg)
    broker = StubBroker()
    dramatiq.set_broker(broker)
    return broker


job_broker()

logger = get_logger(__name__)


def _run_with_syncer[T](
    database_url: str | None,
    async_fn: cabc.Callable[[GitHubIssueSyncer], cabc.Awaitable[T]],
) -> T:
    """Execute ``async_fn`` against a freshly opened syncer.

    Failures are logged and re-raised so Dramatiq can retry the message.
    """

    async def run() -> T:
        async with open_syncer(database_url) as syncer:
            return await async_fn(syncer)

    try:
        return asyncio.run(run())
    except Exception as exc:
        log_exception(logger, f"Mirror job failed: {type(exc).__name__}: {exc}", exc)
        raise


@dramatiq.actor
def sync_issue_job(
    repo_name: str,
    issue_number: int,
    *,
    repo_id: int | None = None,
    database_url: str | None = None,
) -> int:
    """Mirror one issue and return the id of its topic."""

    async def execute(syncer: GitHubIssueSyncer) -> int:
        result = await syncer.sync_issue(repo_name, issue_number, repo_id)
        return result.topic_id

    return _run_with_syncer(database_url, execute)


@dramatiq.actor
def sync_repo_job(repo_name: str, *, database_url: str | None = None) -> int:
    """Mirror every issue of a repository and return how many were synced."""

    async def execute(syncer: GitHubIssueSyncer) -> int:
        result = await syncer.sync_repo(repo_name)
        return result.issues_synced

    return _run_with_syncer(database_url, execute)


@dramatiq.actor
def mirror_post_job(post_id: int, *, database_url: str | None = None) -> bool:
    """Mirror a new forum post to GitHub as an issue or a comment.

    First posts open an issue; replies become comments. Returns True when
    anything was created on GitHub.
    """

    async def execute(syncer: GitHubIssueSyncer) -> bool:
        if await syncer.mirror_issue_topic(post_id):
            return True
        return await syncer.mirror_issue_post(post_id)

    return _run_with_syncer(database_url, execute)


@dramatiq.actor
def mirror_topic_state_job(
    topic_id: int, closed: bool, *, database_url: str | None = None  # noqa: FBT001
) -> bool:
    """Close or reopen the GitHub issue of a topic."""

    async def execute(syncer: GitHubIssueSyncer) -> bool:
        return await syncer.mirror_issue_state(topic_id, closed=closed)

    return _run_with_syncer(database_url, execute)
