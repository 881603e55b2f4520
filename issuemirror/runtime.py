"""Assemble a ready-to-use syncer for jobs and the command line.

Configuration is driven by environment variables:

- ``ISSUEMIRROR_DATABASE_URL``: SQLAlchemy URL of the forum database
- ``ISSUEMIRROR_GITHUB_TOKEN`` and friends: see :class:`GitHubClientConfig`
- ``ISSUEMIRROR_ISSUE_TAG`` and friends: see :class:`MirrorConfig`
"""

from __future__ import annotations

import contextlib
import os
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from issuemirror.forum.storage import init_forum_storage
from issuemirror.github.client import GitHubClient, GitHubClientConfig
from issuemirror.github.service import GitHubIssueService
from issuemirror.mirror.categories import RepoCategoryService
from issuemirror.mirror.config import MirrorConfig
from issuemirror.mirror.syncer import GitHubIssueSyncer

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession

    from issuemirror.github.client import GitHubTransport
    from issuemirror.mirror.hooks import CategoryHooks

DATABASE_URL_ENV = "ISSUEMIRROR_DATABASE_URL"


class MissingDatabaseURLError(RuntimeError):
    """Raised when no database URL is supplied or configured."""

    def __init__(self) -> None:
        """Name the environment variable that should be set."""
        super().__init__(f"{DATABASE_URL_ENV} is required")


def resolve_database_url(database_url: str | None = None) -> str:
    """Return ``database_url`` or the configured one."""
    resolved = (database_url or os.environ.get(DATABASE_URL_ENV, "")).strip()
    if not resolved:
        raise MissingDatabaseURLError
    return resolved


def build_syncer(
    session_factory: async_sessionmaker[AsyncSession],
    transport: GitHubTransport,
    *,
    config: MirrorConfig | None = None,
    hooks: CategoryHooks | None = None,
) -> GitHubIssueSyncer:
    """Wire a syncer from storage, a GitHub transport and configuration."""
    resolved = config or MirrorConfig.from_env()
    categories = RepoCategoryService(
        session_factory,
        hooks,
        default_parent_category_id=resolved.default_parent_category_id,
    )
    return GitHubIssueSyncer(
        session_factory,
        GitHubIssueService(transport),
        categories=categories,
        config=resolved,
    )


@contextlib.asynccontextmanager
async def open_syncer(
    database_url: str | None = None,
    *,
    github_config: GitHubClientConfig | None = None,
    config: MirrorConfig | None = None,
) -> cabc.AsyncIterator[GitHubIssueSyncer]:
    """Yield a syncer bound to a fresh engine and GitHub client.

    The engine is disposed and the HTTP client closed when the block exits,
    so each call can run under its own event loop.
    """
    engine = create_async_engine(resolve_database_url(database_url))
    try:
        await init_forum_storage(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        client_config = github_config or GitHubClientConfig.from_env()
        async with GitHubClient(client_config) as client:
            yield build_syncer(session_factory, client, config=config)
    finally:
        await engine.dispose()
