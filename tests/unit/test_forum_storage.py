"""Unit tests for forum models and post helpers."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest
from sqlalchemy.exc import StatementError

from issuemirror.forum import Post, Topic, TopicArchetype, User
from issuemirror.forum.posts import add_post, first_post, next_post_number
from tests.helpers.forum_builders import make_topic, make_user, topic_posts

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@pytest.mark.asyncio
async def test_add_topic_creates_first_post(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A new topic starts with post number one holding its body."""
    user = await make_user(session_factory)
    topic = await make_topic(session_factory, user, raw="Hello")

    posts = await topic_posts(session_factory, topic.id)

    assert [(p.post_number, p.raw) for p in posts] == [(1, "Hello")]
    assert topic.is_regular
    assert topic.tags == []


@pytest.mark.asyncio
async def test_post_numbers_increase_per_topic(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Post numbers are allocated per topic, not globally."""
    user = await make_user(session_factory)
    first = await make_topic(session_factory, user)
    second = await make_topic(session_factory, user)

    async with session_factory() as session:
        reply = await add_post(
            session,
            topic_id=first.id,
            user_id=user.id,
            raw="reply",
            created_at=dt.datetime(2000, 1, 2, tzinfo=dt.UTC),
        )
        assert reply.post_number == 2
        assert await next_post_number(session, second.id) == 2
        opening = await first_post(session, first.id)
        assert opening is not None
        assert opening.raw == "Opening post"
        await session.commit()


@pytest.mark.asyncio
async def test_naive_datetimes_are_rejected(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Storing a naive timestamp fails instead of guessing a zone."""
    user = await make_user(session_factory)
    topic = await make_topic(session_factory, user)

    async with session_factory() as session:
        session.add(
            Post(
                topic_id=topic.id,
                user_id=user.id,
                post_number=2,
                raw="naive",
                created_at=dt.datetime(2000, 1, 1),  # noqa: DTZ001
            )
        )
        with pytest.raises(StatementError, match="timezone aware"):
            await session.flush()


@pytest.mark.asyncio
async def test_datetimes_round_trip_as_utc(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Offsets are normalised to UTC on the way back out."""
    user = await make_user(session_factory)
    topic = await make_topic(session_factory, user)
    plus_two = dt.timezone(dt.timedelta(hours=2))

    async with session_factory() as session:
        stored = await session.get_one(Topic, topic.id)
        stored.created_at = dt.datetime(2000, 1, 1, 12, tzinfo=plus_two)
        await session.commit()

    async with session_factory() as session:
        reloaded = await session.get_one(Topic, topic.id)

    assert reloaded.created_at == dt.datetime(2000, 1, 1, 10, tzinfo=dt.UTC)
    assert reloaded.created_at.tzinfo == dt.UTC


def test_display_name_falls_back_to_username() -> None:
    """Users without a full name are shown by username."""
    assert User(username="bob", name=None).display_name == "bob"
    assert User(username="bob", name="Bob B").display_name == "Bob B"


def test_private_messages_are_not_regular() -> None:
    """Only regular archetypes count as discussion topics."""
    assert not Topic(title="pm", archetype=TopicArchetype.PRIVATE_MESSAGE).is_regular
