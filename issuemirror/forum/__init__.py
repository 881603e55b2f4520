"""Forum storage and idempotent materialisation of mirrored rows."""

from __future__ import annotations

from .errors import (
    NoncePersistError,
    PostNotFoundError,
    TimezoneAwareRequiredError,
    TopicNotFoundError,
    UnknownNonceColumnError,
    UserPersistError,
)
from .mutex import NamedMutex, shared_mutex
from .nonce import Materialized, NonceMaterializer
from .storage import (
    ActionCode,
    Category,
    GithubRepoCategory,
    Post,
    PostType,
    Topic,
    TopicArchetype,
    User,
    init_forum_storage,
)
from .users import GitHubUserSyncer, UserResolver

__all__ = [
    "ActionCode",
    "Category",
    "GitHubUserSyncer",
    "GithubRepoCategory",
    "Materialized",
    "NamedMutex",
    "NonceMaterializer",
    "NoncePersistError",
    "Post",
    "PostNotFoundError",
    "PostType",
    "TimezoneAwareRequiredError",
    "Topic",
    "TopicArchetype",
    "TopicNotFoundError",
    "UnknownNonceColumnError",
    "User",
    "UserPersistError",
    "UserResolver",
    "init_forum_storage",
    "shared_mutex",
]
