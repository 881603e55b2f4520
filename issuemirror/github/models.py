"""Typed domain models for mirrored GitHub issues and their timelines."""

from __future__ import annotations

import dataclasses
import typing as typ

from issuemirror.common.slug import repo_slug

if typ.TYPE_CHECKING:
    import datetime as dt

GHOST_LOGIN = "ghost"


@dataclasses.dataclass(frozen=True, slots=True)
class Actor:
    """GitHub account that performed an action."""

    github_login: str


@dataclasses.dataclass(frozen=True, slots=True)
class Issue:
    """Reference to one issue of a repository.

    Equality is by value so the reference can key per-issue state.
    """

    owner: str
    name: str
    issue_number: int

    @property
    def repo_name(self) -> str:
        """Return the ``owner/name`` slug of the issue's repository."""
        return repo_slug(self.owner, self.name)


@dataclasses.dataclass(frozen=True, slots=True)
class IssueData:
    """Point-in-time snapshot of an issue used to seed its topic."""

    title: str
    body: str
    github_id: str
    created_at: dt.datetime
    author: Actor
    state: str = "OPEN"

    @property
    def is_closed(self) -> bool:
        """Return True when GitHub reports the issue as closed."""
        return self.state.upper() == "CLOSED"


@dataclasses.dataclass(frozen=True, slots=True)
class IssueEventInfo:
    """Envelope shared by every timeline event."""

    github_id: str
    created_at: dt.datetime
    actor: Actor


@dataclasses.dataclass(frozen=True, slots=True)
class ClosedEvent:
    """The issue was closed."""


@dataclasses.dataclass(frozen=True, slots=True)
class ReopenedEvent:
    """The issue was reopened."""


@dataclasses.dataclass(frozen=True, slots=True)
class IssueCommentEvent:
    """A comment was added to the issue."""

    body: str
    number: int


@dataclasses.dataclass(frozen=True, slots=True)
class RenamedTitleEvent:
    """The issue title changed."""

    previous_title: str
    new_title: str


type IssueEvent = ClosedEvent | ReopenedEvent | IssueCommentEvent | RenamedTitleEvent
type TimelineEntry = tuple[IssueEventInfo, IssueEvent]


@dataclasses.dataclass(frozen=True, slots=True)
class CreatedIssue:
    """Identifiers GitHub returns after creating an issue."""

    number: int
    node_id: str
    url: str


@dataclasses.dataclass(frozen=True, slots=True)
class CreatedComment:
    """Identifiers GitHub returns after creating an issue comment."""

    id: int
    node_id: str
    url: str | None = None
