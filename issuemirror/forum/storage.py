"""Persistence models for the mirrored forum.

This is a deliberately small forum: users, categories, the repository to
category mapping, topics and posts. Mirrored rows carry the GitHub node id
they were materialised from in ``remote_node_id``; the unique constraints on
that column are the last line of defence against duplicate mirroring.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from issuemirror.common.time import utcnow

from .errors import TimezoneAwareRequiredError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class PostType(enum.StrEnum):
    """Kinds of post stored in a topic."""

    REGULAR = "regular"
    SMALL_ACTION = "small_action"


class ActionCode(enum.StrEnum):
    """Action codes carried by small-action marker posts."""

    CLOSED_ENABLED = "closed.enabled"
    CLOSED_DISABLED = "closed.disabled"
    RENAMED = "renamed"


class TopicArchetype(enum.StrEnum):
    """Topic archetypes; only regular topics are mirrored back to GitHub."""

    REGULAR = "regular"
    PRIVATE_MESSAGE = "private_message"


class Base(DeclarativeBase):
    """Base declarative class for forum models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class User(Base):
    """Forum account; accounts created for GitHub actors carry their login."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255))
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    github_login: Mapped[str | None] = mapped_column(
        String(255), unique=True, default=None
    )
    is_mirrored: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    @property
    def display_name(self) -> str:
        """Return the full name when set, otherwise the username."""
        return self.name or self.username


class Category(Base):
    """Forum category, optionally bound to a GitHub repository."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    parent_category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), default=None
    )
    github_repo_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    github_repo_name: Mapped[str | None] = mapped_column(String(255), default=None)
    github_issues: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class GithubRepoCategory(Base):
    """Mapping from a GitHub repository to the category that mirrors it."""

    __tablename__ = "github_repo_categories"
    __table_args__ = (Index("ix_github_repo_categories_name", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repo_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, default=None)
    name: Mapped[str] = mapped_column(String(255))
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class Topic(Base):
    """Discussion thread; mirrored topics correspond to one GitHub issue."""

    __tablename__ = "topics"
    __table_args__ = (Index("ix_topics_category", "category_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_node_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, default=None
    )
    remote_issue_number: Mapped[int | None] = mapped_column(Integer, default=None)
    title: Mapped[str] = mapped_column(Text)
    archetype: Mapped[str] = mapped_column(String(32), default=TopicArchetype.REGULAR)
    closed: Mapped[bool] = mapped_column(Boolean, default=False)
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), default=None
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    posts: Mapped[list[Post]] = relationship(
        back_populates="topic", order_by="Post.post_number"
    )

    @property
    def is_regular(self) -> bool:
        """Return True for ordinary discussion topics."""
        return self.archetype == TopicArchetype.REGULAR


class Post(Base):
    """One entry in a topic: a regular post or a small-action marker."""

    __tablename__ = "posts"
    __table_args__ = (
        UniqueConstraint("topic_id", "post_number", name="uq_posts_topic_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_node_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, default=None
    )
    remote_comment_number: Mapped[int | None] = mapped_column(BigInteger, default=None)
    topic_id: Mapped[int] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    post_number: Mapped[int] = mapped_column(Integer)
    post_type: Mapped[str] = mapped_column(String(32), default=PostType.REGULAR)
    action_code: Mapped[str | None] = mapped_column(String(64), default=None)
    raw: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    topic: Mapped[Topic] = relationship(back_populates="posts")


async def init_forum_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
