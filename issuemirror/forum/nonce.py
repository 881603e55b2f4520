"""Idempotent, nonce-keyed materialisation of mirrored topics and posts.

Every mirrored row is tagged with the remote id it came from. Creation runs
inside a named region, re-checks for an existing row in the same transaction
right before creating one, and falls back to the unique constraint on the
nonce column: a violation caused by a writer in another process rolls back
and returns the winner instead.
"""

from __future__ import annotations

import dataclasses as dc
import logging
import typing as typ

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .errors import NoncePersistError, TopicNotFoundError, UnknownNonceColumnError
from .mutex import ENSURE_POST_REGION, ENSURE_TOPIC_REGION, NamedMutex, shared_mutex
from .posts import add_post
from .storage import ActionCode, Post, PostType, Topic

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

type EntityFactory[E] = cabc.Callable[[AsyncSession], cabc.Awaitable[E]]
type AfterCreate[E] = cabc.Callable[[AsyncSession, E], cabc.Awaitable[None]]


@dc.dataclass(frozen=True, slots=True)
class Materialized[E]:
    """Outcome of an ensure call: the row and whether this call created it."""

    entity: E
    created: bool


def _nonce_column(model: type[Topic] | type[Post], nonce_name: str) -> typ.Any:  # noqa: ANN401
    column = model.__table__.columns.get(nonce_name)
    if column is None or not column.unique:
        raise UnknownNonceColumnError(model.__name__, nonce_name)
    return getattr(model, nonce_name)


class NonceMaterializer:
    """Create mirrored rows at most once per nonce."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        mutex: NamedMutex | None = None,
    ) -> None:
        """Store the session factory and the mutex guarding each region."""
        self._session_factory = session_factory
        self._mutex = mutex or shared_mutex()

    async def ensure_topic_with_nonce(
        self,
        nonce_name: str,
        nonce_value: str,
        factory: EntityFactory[Topic],
    ) -> Materialized[Topic]:
        """Return the topic tagged ``nonce_value``, creating it when absent.

        ``factory`` must build the topic and its first post in the session it
        receives; both are committed together with the nonce.
        """
        return await self._ensure(
            Topic, ENSURE_TOPIC_REGION, nonce_name, nonce_value, factory, None
        )

    async def ensure_post_with_nonce(
        self,
        nonce_name: str,
        nonce_value: str,
        factory: EntityFactory[Post],
        after_create: AfterCreate[Post] | None = None,
    ) -> Materialized[Post]:
        """Return the post tagged ``nonce_value``, creating it when absent.

        ``after_create`` runs in the creating transaction, and only when
        ``factory`` ran, so follow-up mutations happen exactly once.
        """
        return await self._ensure(
            Post, ENSURE_POST_REGION, nonce_name, nonce_value, factory, after_create
        )

    async def ensure_closed_state_with_nonce(  # noqa: PLR0913
        self,
        *,
        topic_id: int,
        closed: bool,
        nonce_name: str,
        nonce_value: str,
        user_id: int,
        created_at: dt.datetime,
    ) -> Materialized[Topic]:
        """Apply an open/closed transition to a topic once per nonce.

        When no marker carries the nonce and the topic's state differs from
        ``closed``, the state is flipped and a small-action marker tagged with
        the nonce is added in the same transaction. Replays and transitions
        to the current state change nothing. ``created`` reports whether a
        marker was written.
        """
        column = _nonce_column(Post, nonce_name)
        async with (
            self._session_factory() as session,
            self._mutex.synchronize(ENSURE_POST_REGION, session),
        ):
            topic = await session.get(Topic, topic_id)
            if topic is None:
                raise TopicNotFoundError(topic_id)
            marker = await session.scalar(select(Post).where(column == nonce_value))
            if marker is not None or topic.closed == closed:
                return Materialized(topic, created=False)

            topic.closed = closed
            marker = await add_post(
                session,
                topic_id=topic_id,
                user_id=user_id,
                raw="",
                created_at=created_at,
                post_type=PostType.SMALL_ACTION,
                action_code=(
                    ActionCode.CLOSED_ENABLED if closed else ActionCode.CLOSED_DISABLED
                ),
            )
            setattr(marker, nonce_name, nonce_value)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                winner = await session.scalar(select(Post).where(column == nonce_value))
                if winner is None:
                    raise NoncePersistError(nonce_name, nonce_value) from exc
                refreshed = await session.get(Topic, topic_id)
                return Materialized(refreshed or topic, created=False)

            await session.refresh(topic)
            logger.debug(
                "Set topic %s closed=%s for %s=%s",
                topic_id,
                closed,
                nonce_name,
                nonce_value,
            )
            return Materialized(topic, created=True)

    async def _ensure[E: (Topic, Post)](  # noqa: PLR0913
        self,
        model: type[E],
        region: str,
        nonce_name: str,
        nonce_value: str,
        factory: EntityFactory[E],
        after_create: AfterCreate[E] | None,
    ) -> Materialized[E]:
        column = _nonce_column(model, nonce_name)
        stmt = select(model).where(column == nonce_value)
        async with (
            self._session_factory() as session,
            self._mutex.synchronize(region, session),
        ):
            existing = await session.scalar(stmt)
            if existing is not None:
                return Materialized(existing, created=False)

            entity = await factory(session)
            setattr(entity, nonce_name, nonce_value)
            session.add(entity)
            try:
                await session.flush()
                if after_create is not None:
                    await after_create(session, entity)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                winner = await session.scalar(stmt)
                if winner is None:
                    raise NoncePersistError(nonce_name, nonce_value) from exc
                logger.info(
                    "Lost race materialising %s %s=%s; using existing row",
                    model.__name__,
                    nonce_name,
                    nonce_value,
                )
                return Materialized(winner, created=False)

            await session.refresh(entity)
            return Materialized(entity, created=True)
