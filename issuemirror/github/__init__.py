"""GitHub transport, event model and lazy issue queries."""

from __future__ import annotations

from .client import GitHubClient, GitHubClientConfig, GitHubTransport
from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    UnrecognizedEventTypeError,
)
from .models import (
    Actor,
    ClosedEvent,
    CreatedComment,
    CreatedIssue,
    Issue,
    IssueCommentEvent,
    IssueData,
    IssueEvent,
    IssueEventInfo,
    RenamedTitleEvent,
    ReopenedEvent,
    TimelineEntry,
)
from .pagination import Page, paginate
from .querier import GitHubIssueQuerier, classify_timeline_item
from .service import GitHubIssueService

__all__ = [
    "Actor",
    "ClosedEvent",
    "CreatedComment",
    "CreatedIssue",
    "GitHubAPIError",
    "GitHubClient",
    "GitHubClientConfig",
    "GitHubConfigError",
    "GitHubIssueQuerier",
    "GitHubIssueService",
    "GitHubResponseShapeError",
    "GitHubTransport",
    "Issue",
    "IssueCommentEvent",
    "IssueData",
    "IssueEvent",
    "IssueEventInfo",
    "Page",
    "RenamedTitleEvent",
    "ReopenedEvent",
    "TimelineEntry",
    "UnrecognizedEventTypeError",
    "classify_timeline_item",
    "paginate",
]
