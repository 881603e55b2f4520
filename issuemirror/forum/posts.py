"""Helpers for building topics and posts inside an open session."""

from __future__ import annotations

import typing as typ

from sqlalchemy import func, select

from .storage import Post, PostType, Topic

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession


async def next_post_number(session: AsyncSession, topic_id: int) -> int:
    """Return the post number the next post in ``topic_id`` should take."""
    stmt = select(func.coalesce(func.max(Post.post_number), 0)).where(
        Post.topic_id == topic_id
    )
    current = await session.scalar(stmt)
    return int(current or 0) + 1


async def add_post(  # noqa: PLR0913
    session: AsyncSession,
    *,
    topic_id: int,
    user_id: int,
    raw: str,
    created_at: dt.datetime,
    post_type: PostType = PostType.REGULAR,
    action_code: str | None = None,
    remote_comment_number: int | None = None,
) -> Post:
    """Append a post to ``topic_id`` and flush it so it has an id."""
    post = Post(
        topic_id=topic_id,
        user_id=user_id,
        post_number=await next_post_number(session, topic_id),
        post_type=post_type,
        action_code=action_code,
        raw=raw,
        remote_comment_number=remote_comment_number,
        created_at=created_at,
    )
    session.add(post)
    await session.flush()
    return post


async def add_topic(  # noqa: PLR0913
    session: AsyncSession,
    *,
    title: str,
    raw: str,
    user_id: int,
    created_at: dt.datetime,
    category_id: int | None = None,
    tags: list[str] | None = None,
    remote_issue_number: int | None = None,
) -> Topic:
    """Create a topic together with its first post."""
    topic = Topic(
        title=title,
        user_id=user_id,
        category_id=category_id,
        tags=list(tags or []),
        remote_issue_number=remote_issue_number,
        created_at=created_at,
    )
    session.add(topic)
    await session.flush()
    await add_post(
        session, topic_id=topic.id, user_id=user_id, raw=raw, created_at=created_at
    )
    return topic


async def first_post(session: AsyncSession, topic_id: int) -> Post | None:
    """Return post number one of ``topic_id`` if it exists."""
    stmt = select(Post).where(Post.topic_id == topic_id, Post.post_number == 1)
    return await session.scalar(stmt)
