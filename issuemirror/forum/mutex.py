"""Named critical sections for materialisation.

Within one process, regions are serialised with an :class:`asyncio.Lock`
per region name and event loop. When a session bound to PostgreSQL is
supplied, a transaction-scoped advisory lock derived from the name is also
taken so the region spans worker processes; it is released when the
session's transaction ends.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import typing as typ
import weakref

from sqlalchemy import text

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

ENSURE_TOPIC_REGION = "issuemirror:ensure-topic-with-nonce"
ENSURE_POST_REGION = "issuemirror:ensure-post-with-nonce"
ENSURE_CATEGORY_REGION = "issuemirror:ensure-category"

_ADVISORY_LOCK_SQL = text("SELECT pg_advisory_xact_lock(:key)")


def advisory_lock_key(name: str) -> int:
    """Derive a stable signed 64-bit advisory lock key from ``name``."""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class NamedMutex:
    """Registry of named locks shared by everything that materialises rows."""

    def __init__(self) -> None:
        """Start with no locks; they are created on first use."""
        self._locks: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
        ] = weakref.WeakKeyDictionary()

    def _lock_for(self, name: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        locks = self._locks.get(loop)
        if locks is None:
            locks = {}
            self._locks[loop] = locks
        lock = locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            locks[name] = lock
        return lock

    @contextlib.asynccontextmanager
    async def synchronize(
        self, name: str, session: AsyncSession | None = None
    ) -> cabc.AsyncIterator[None]:
        """Hold the region ``name`` for the duration of the block.

        The lock is released on every exit path, including exceptions raised
        inside the block.
        """
        async with self._lock_for(name):
            if session is not None:
                await _acquire_advisory_lock(session, name)
            yield


async def _acquire_advisory_lock(session: AsyncSession, name: str) -> None:
    if session.get_bind().dialect.name != "postgresql":
        return
    logger.debug("Taking advisory lock for region %s", name)
    await session.execute(_ADVISORY_LOCK_SQL, {"key": advisory_lock_key(name)})


_shared_mutex = NamedMutex()


def shared_mutex() -> NamedMutex:
    """Return the process-wide mutex used when callers do not inject one."""
    return _shared_mutex
