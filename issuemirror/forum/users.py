"""Resolve GitHub actors to forum users."""

from __future__ import annotations

import typing as typ

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .errors import UserPersistError
from .storage import User

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class UserResolver(typ.Protocol):
    """Collaborator that maps a GitHub login to a forum user."""

    async def ensure_user(self, github_login: str) -> User:
        """Return the forum user for ``github_login``, creating it if needed."""
        ...


class GitHubUserSyncer:
    """Default :class:`UserResolver` that upserts users keyed by login."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Store the session factory used for lookups and inserts."""
        self._session_factory = session_factory

    async def ensure_user(self, github_login: str) -> User:
        """Return the user mirroring ``github_login``."""
        stmt = select(User).where(User.github_login == github_login)
        async with self._session_factory() as session:
            existing = await session.scalar(stmt)
            if existing is not None:
                return existing

            user = User(
                username=github_login,
                name=github_login,
                github_login=github_login,
                is_mirrored=True,
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                existing = await session.scalar(stmt)
                if existing is None:
                    raise UserPersistError(github_login) from exc
                return existing

            await session.refresh(user)
            return user
