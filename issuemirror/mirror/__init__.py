"""Forward and reverse mirroring between GitHub issues and forum topics.

Jobs live in :mod:`issuemirror.mirror.jobs` and are not imported here, so
importing this package never touches the Dramatiq broker.
"""

from __future__ import annotations

from .categories import RepoCategoryService
from .config import MirrorConfig
from .hooks import CategoryHooks, CategoryNamer, ParentCategoryFinder
from .observability import (
    ErrorCategory,
    SyncEventLogger,
    SyncEventType,
    categorize_error,
)
from .poster import GitHubIssuePoster
from .syncer import GitHubIssueSyncer, IssueSyncResult, RepoSyncResult

__all__ = [
    "CategoryHooks",
    "CategoryNamer",
    "ErrorCategory",
    "GitHubIssuePoster",
    "GitHubIssueSyncer",
    "IssueSyncResult",
    "MirrorConfig",
    "ParentCategoryFinder",
    "RepoCategoryService",
    "RepoSyncResult",
    "SyncEventLogger",
    "SyncEventType",
    "categorize_error",
]
