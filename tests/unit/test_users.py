"""Unit tests for resolving GitHub logins to forum users."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from sqlalchemy import func, select

from issuemirror.forum import GitHubUserSyncer, User

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@pytest.mark.asyncio
async def test_ensure_user_creates_mirrored_account(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Unknown logins become mirrored users named after the login."""
    user = await GitHubUserSyncer(session_factory).ensure_user("alice")

    assert (user.username, user.name, user.github_login) == ("alice", "alice", "alice")
    assert user.is_mirrored is True


@pytest.mark.asyncio
async def test_ensure_user_is_idempotent(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Repeated and concurrent lookups resolve to one row."""
    syncer = GitHubUserSyncer(session_factory)

    first = await syncer.ensure_user("alice")
    again = await asyncio.gather(*(syncer.ensure_user("alice") for _ in range(3)))

    assert {user.id for user in again} == {first.id}
    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(User))
    assert count == 1
