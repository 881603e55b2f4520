"""Map GitHub repositories to the forum categories that mirror them."""

from __future__ import annotations

import logging
import secrets
import typing as typ

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from issuemirror.common.slug import short_repo_name
from issuemirror.forum.mutex import ENSURE_CATEGORY_REGION, NamedMutex, shared_mutex
from issuemirror.forum.storage import Category, GithubRepoCategory
from issuemirror.lazy import LazySequence

from .hooks import CategoryHooks

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from issuemirror.forum.storage import Topic

logger = logging.getLogger(__name__)

ISSUES_SUFFIX = "-issues"


def category_description(repo_name: str, *, issues: bool) -> str:
    """Return the description given to a newly created category."""
    kind = "Issues" if issues else "Commits"
    return f"{kind} for {repo_name}"


class RepoCategoryService:
    """Find or create the category bound to a repository."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hooks: CategoryHooks | None = None,
        default_parent_category_id: int | None = None,
        mutex: NamedMutex | None = None,
    ) -> None:
        """Store collaborators used when categories must be created."""
        self._session_factory = session_factory
        self._hooks = hooks or CategoryHooks()
        self._default_parent_category_id = default_parent_category_id
        self._mutex = mutex or shared_mutex()

    async def ensure_category(
        self,
        repo_name: str,
        repo_id: int | None = None,
        *,
        issues: bool = False,
    ) -> Category | None:
        """Return the category mirroring ``repo_name``.

        The mapping is looked up by ``repo_id`` first and by name second. A
        category is only created when none exists and ``repo_id`` is known;
        without one, ``None`` is returned. The repository id, name and issue
        flag are written back onto both the mapping and the category.

        Creation runs inside the ``ensure-category`` region. A unique
        violation from a writer in another process rolls back and the
        lookup is repeated, returning the winner's category.
        """
        async with (
            self._session_factory() as session,
            self._mutex.synchronize(ENSURE_CATEGORY_REGION, session),
        ):
            try:
                category = await self._ensure_in_session(
                    session, repo_name, repo_id, issues=issues
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "Lost race creating category for %s; using existing mapping",
                    repo_name,
                )
                category = await self._ensure_in_session(
                    session, repo_name, repo_id, issues=issues
                )
                await session.commit()
            if category is not None:
                await session.refresh(category)
            return category

    async def _ensure_in_session(
        self,
        session: AsyncSession,
        repo_name: str,
        repo_id: int | None,
        *,
        issues: bool,
    ) -> Category | None:
        mapping = await self._find_mapping(session, repo_name, repo_id)
        category = (
            await session.get(Category, mapping.category_id)
            if mapping is not None
            else None
        )

        if category is None and repo_id is not None:
            category = await self._create_category(
                session, repo_name, repo_id, issues=issues
            )
            mapping = GithubRepoCategory(category_id=category.id, name=repo_name)
            session.add(mapping)

        if category is None or mapping is None:
            return None

        # Name-only lookups keep any repository id already recorded.
        if repo_id is not None and mapping.repo_id != repo_id:
            mapping.repo_id = repo_id
        if mapping.name != repo_name:
            mapping.name = repo_name
        category.github_repo_id = mapping.repo_id
        category.github_repo_name = repo_name
        category.github_issues = issues
        await session.flush()
        return category

    @staticmethod
    async def _find_mapping(
        session: AsyncSession, repo_name: str, repo_id: int | None
    ) -> GithubRepoCategory | None:
        if repo_id is not None:
            mapping = await session.scalar(
                select(GithubRepoCategory).where(GithubRepoCategory.repo_id == repo_id)
            )
            if mapping is not None:
                return mapping
        return await session.scalar(
            select(GithubRepoCategory)
            .where(GithubRepoCategory.name == repo_name)
            .order_by(GithubRepoCategory.id)
            .limit(1)
        )

    async def _create_category(
        self,
        session: AsyncSession,
        repo_name: str,
        repo_id: int,
        *,
        issues: bool,
    ) -> Category:
        category = Category(
            name=await self._category_name(session, repo_name, repo_id, issues=issues),
            description=category_description(repo_name, issues=issues),
            parent_category_id=self._parent_category_id(
                repo_name, repo_id, issues=issues
            ),
        )
        session.add(category)
        await session.flush()
        logger.info(
            "Created category %s (%s) for %s", category.name, category.id, repo_name
        )
        return category

    def _parent_category_id(
        self, repo_name: str, repo_id: int | None, *, issues: bool
    ) -> int | None:
        parent_id = self._hooks.find_parent_category_id(
            repo_name, repo_id, issues=issues
        )
        if parent_id is None:
            return self._default_parent_category_id
        return parent_id

    async def _category_name(
        self,
        session: AsyncSession,
        repo_name: str,
        repo_id: int | None,
        *,
        issues: bool,
    ) -> str:
        hooked = self._hooks.name_category(repo_name, repo_id, issues=issues)
        if hooked is not None:
            return hooked

        name = short_repo_name(repo_name)
        if issues:
            name += ISSUES_SUFFIX
        taken = await session.scalar(select(Category.id).where(Category.name == name))
        if taken is not None:
            name += secrets.token_hex(16)
        return name

    def repo_names(self) -> LazySequence[str]:
        """Return the names of every mapped repository."""

        async def _iterate() -> cabc.AsyncIterator[str]:
            async with self._session_factory() as session:
                stream = await session.stream_scalars(
                    select(GithubRepoCategory.name).order_by(GithubRepoCategory.id)
                )
                async for name in stream:
                    yield name

        return LazySequence(_iterate)

    async def repo_name_for_topic(self, topic: Topic) -> str | None:
        """Return the repository mirrored by the category of ``topic``."""
        if topic.category_id is None:
            return None
        async with self._session_factory() as session:
            return await session.scalar(
                select(GithubRepoCategory.name)
                .where(GithubRepoCategory.category_id == topic.category_id)
                .order_by(GithubRepoCategory.id)
                .limit(1)
            )
