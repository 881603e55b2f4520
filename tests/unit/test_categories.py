"""Unit tests for repository category mapping and its hooks."""

from __future__ import annotations

import asyncio
import re
import typing as typ

import pytest
from sqlalchemy import func, select

from issuemirror.forum import Category, GithubRepoCategory, Topic
from issuemirror.mirror import CategoryHooks, RepoCategoryService
from issuemirror.mirror.categories import category_description

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


async def _make_category(
    session_factory: async_sessionmaker[AsyncSession], name: str
) -> Category:
    async with session_factory() as session:
        category = Category(name=name)
        session.add(category)
        await session.commit()
        await session.refresh(category)
        return category


class TestCategoryHooks:
    """Tests for the hook registry."""

    def test_first_non_blank_name_wins(self) -> None:
        """Blank answers fall through to later namers."""
        hooks = CategoryHooks()
        hooks.add_category_namer("blank", lambda repo, _id, issues: "  ")
        hooks.add_category_namer("none", lambda repo, _id, issues: None)
        hooks.add_category_namer("real", lambda repo, _id, issues: f"{repo}:{issues}")

        assert hooks.name_category("o/r", 1, issues=True) == "o/r:True"

    def test_removed_hooks_are_not_consulted(self) -> None:
        """Removing a hook by key drops it; unknown keys are ignored."""
        hooks = CategoryHooks()
        hooks.add_parent_category_finder("estate", lambda repo, _id, issues: 9)
        hooks.remove_parent_category_finder("estate")
        hooks.remove_parent_category_finder("missing")
        hooks.add_category_namer("n", lambda repo, _id, issues: "Name")
        hooks.remove_category_namer("n")

        assert hooks.find_parent_category_id("o/r", 1, issues=False) is None
        assert hooks.name_category("o/r", 1, issues=False) is None

    def test_re_registering_a_key_replaces_the_hook(self) -> None:
        """Keys are unique; the latest registration applies."""
        hooks = CategoryHooks()
        hooks.add_parent_category_finder("estate", lambda repo, _id, issues: 1)
        hooks.add_parent_category_finder("estate", lambda repo, _id, issues: 2)

        assert hooks.find_parent_category_id("o/r", None, issues=True) == 2


def test_category_description_names_the_kind() -> None:
    """Descriptions distinguish issue and commit categories."""
    assert category_description("o/r", issues=True) == "Issues for o/r"
    assert category_description("o/r", issues=False) == "Commits for o/r"


@pytest.mark.asyncio
async def test_ensure_category_creates_and_reuses(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """The first call creates the mapping; later calls find it by id."""
    service = RepoCategoryService(session_factory)

    created = await service.ensure_category("octo/reef", 11, issues=True)
    again = await service.ensure_category("octo/reef", 11, issues=True)

    assert created is not None
    assert again is not None
    assert again.id == created.id
    assert created.name == "reef-issues"
    assert created.description == "Issues for octo/reef"
    assert (created.github_repo_id, created.github_repo_name) == (11, "octo/reef")
    assert created.github_issues is True


@pytest.mark.asyncio
async def test_ensure_category_without_repo_id_never_creates(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Unknown repositories without an id have no category."""
    service = RepoCategoryService(session_factory)

    assert await service.ensure_category("octo/reef", issues=True) is None
    assert await service.repo_names().collect() == []


@pytest.mark.asyncio
async def test_name_lookup_keeps_recorded_repo_id(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Finding a mapping by name does not erase its repository id."""
    service = RepoCategoryService(session_factory)
    created = await service.ensure_category("octo/reef", 11, issues=True)

    found = await service.ensure_category("octo/reef", issues=True)

    assert found is not None
    assert created is not None
    assert found.id == created.id
    assert found.github_repo_id == 11


@pytest.mark.asyncio
async def test_renamed_repo_is_found_by_id(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A repository renamed on GitHub keeps its category."""
    service = RepoCategoryService(session_factory)
    created = await service.ensure_category("octo/reef", 11, issues=True)

    renamed = await service.ensure_category("octo/atoll", 11, issues=True)

    assert renamed is not None
    assert created is not None
    assert renamed.id == created.id
    assert renamed.github_repo_name == "octo/atoll"
    assert await service.repo_names().collect() == ["octo/atoll"]


@pytest.mark.asyncio
async def test_name_collision_gets_random_suffix(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """An existing category with the derived name forces a unique suffix."""
    await _make_category(session_factory, "reef-issues")
    service = RepoCategoryService(session_factory)

    created = await service.ensure_category("octo/reef", 11, issues=True)

    assert created is not None
    assert re.fullmatch(r"reef-issues[0-9a-f]{32}", created.name)


@pytest.mark.asyncio
async def test_hooks_choose_name_and_parent(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Registered hooks override the derived name and default parent."""
    parent = await _make_category(session_factory, "Estate")
    hooks = CategoryHooks()
    hooks.add_category_namer("estate", lambda repo, _id, issues: "Reef Issues")
    hooks.add_parent_category_finder("estate", lambda repo, _id, issues: parent.id)
    service = RepoCategoryService(session_factory, hooks)

    created = await service.ensure_category("octo/reef", 11, issues=True)

    assert created is not None
    assert created.name == "Reef Issues"
    assert created.parent_category_id == parent.id


@pytest.mark.asyncio
async def test_default_parent_applies_without_hooks(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """The configured default parent is used when no finder answers."""
    parent = await _make_category(session_factory, "GitHub")
    service = RepoCategoryService(session_factory, default_parent_category_id=parent.id)

    created = await service.ensure_category("octo/reef", 11)

    assert created is not None
    assert created.parent_category_id == parent.id
    assert created.name == "reef"
    assert created.description == "Commits for octo/reef"


@pytest.mark.asyncio
async def test_repo_name_for_topic(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Topics resolve to the repository mirrored by their category."""
    service = RepoCategoryService(session_factory)
    category = await service.ensure_category("octo/reef", 11, issues=True)
    assert category is not None

    assert (
        await service.repo_name_for_topic(Topic(title="t", category_id=category.id))
        == "octo/reef"
    )
    assert await service.repo_name_for_topic(Topic(title="t")) is None
    assert await service.repo_name_for_topic(Topic(title="t", category_id=999)) is None


class _StaleFirstLookup(RepoCategoryService):
    """Misses the mapping once, as a writer racing another process would."""

    lookups = 0

    async def _find_mapping(
        self, session: AsyncSession, repo_name: str, repo_id: int | None
    ) -> GithubRepoCategory | None:
        self.lookups += 1
        if self.lookups == 1:
            return None
        return await super()._find_mapping(session, repo_name, repo_id)


async def _count(
    session_factory: async_sessionmaker[AsyncSession],
    model: type[Category] | type[GithubRepoCategory],
) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model)) or 0


@pytest.mark.asyncio
async def test_concurrent_ensures_create_one_category(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A burst of ensures for a new repository creates a single mapping."""
    service = RepoCategoryService(session_factory)

    first, second = await asyncio.gather(
        service.ensure_category("octo/reef", 11, issues=True),
        service.ensure_category("octo/reef", 11, issues=True),
    )

    assert first is not None
    assert second is not None
    assert first.id == second.id
    assert await _count(session_factory, Category) == 1
    assert await _count(session_factory, GithubRepoCategory) == 1


@pytest.mark.asyncio
async def test_lost_create_race_returns_existing_category(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A unique violation on the mapping rolls back and re-reads the winner."""
    winner = await RepoCategoryService(session_factory).ensure_category(
        "octo/reef", 11, issues=True
    )
    racer = _StaleFirstLookup(session_factory)

    found = await racer.ensure_category("octo/reef", 11, issues=True)

    assert winner is not None
    assert found is not None
    assert found.id == winner.id
    assert racer.lookups == 2
    assert await _count(session_factory, Category) == 1
    assert await _count(session_factory, GithubRepoCategory) == 1
