"""Customisation points consulted when a repository gets a new category."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc

type ParentCategoryFinder = cabc.Callable[[str, int | None, bool], int | None]
type CategoryNamer = cabc.Callable[[str, int | None, bool], str | None]


@dc.dataclass(slots=True)
class CategoryHooks:
    """Ordered parent finders and category namers keyed by registration name.

    Each hook receives ``(repo_name, repo_id, issues)``. Hooks run in
    registration order and the first non-empty answer wins.

    Examples
    --------
    >>> hooks = CategoryHooks()
    >>> hooks.add_category_namer("estate", lambda repo, _id, issues: "Core")
    >>> hooks.name_category("owner/repo", 1, issues=False)
    'Core'
    """

    parent_category_finders: dict[str, ParentCategoryFinder] = dc.field(
        default_factory=dict
    )
    category_namers: dict[str, CategoryNamer] = dc.field(default_factory=dict)

    def add_parent_category_finder(
        self, key: str, finder: ParentCategoryFinder
    ) -> None:
        """Register ``finder`` under ``key``, replacing any previous one."""
        self.parent_category_finders[key] = finder

    def remove_parent_category_finder(self, key: str) -> None:
        """Drop the finder registered under ``key`` if present."""
        self.parent_category_finders.pop(key, None)

    def add_category_namer(self, key: str, namer: CategoryNamer) -> None:
        """Register ``namer`` under ``key``, replacing any previous one."""
        self.category_namers[key] = namer

    def remove_category_namer(self, key: str) -> None:
        """Drop the namer registered under ``key`` if present."""
        self.category_namers.pop(key, None)

    def find_parent_category_id(
        self, repo_name: str, repo_id: int | None, *, issues: bool
    ) -> int | None:
        """Return the first parent category id any finder supplies."""
        for finder in self.parent_category_finders.values():
            parent_id = finder(repo_name, repo_id, issues)
            if parent_id:
                return parent_id
        return None

    def name_category(
        self, repo_name: str, repo_id: int | None, *, issues: bool
    ) -> str | None:
        """Return the first non-blank category name any namer supplies."""
        for namer in self.category_namers.values():
            name = namer(repo_name, repo_id, issues)
            if name and name.strip():
                return name
        return None
