"""Typed, lazy GitHub issue and timeline queries.

Timeline nodes are decoded with msgspec tagged structs keyed on
``__typename``. Kinds listed in ``IGNORED_TYPENAMES`` are known but not
mirrored and classify to ``None``; anything else unknown raises
:class:`UnrecognizedEventTypeError` so schema drift is never silently
compacted away.
"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

import msgspec

from issuemirror.common.time import parse_github_datetime
from issuemirror.lazy import LazySequence, compact, lazy_map

from .errors import GitHubResponseShapeError, UnrecognizedEventTypeError
from .models import (
    GHOST_LOGIN,
    Actor,
    ClosedEvent,
    Issue,
    IssueCommentEvent,
    IssueData,
    IssueEvent,
    IssueEventInfo,
    RenamedTitleEvent,
    ReopenedEvent,
    TimelineEntry,
)
from .pagination import Page, page_from_connection, paginate

if typ.TYPE_CHECKING:
    from .client import GitHubTransport

COMMENT_ITEM_TYPES: tuple[str, ...] = ("ISSUE_COMMENT",)
STATE_ITEM_TYPES: tuple[str, ...] = (
    "CLOSED_EVENT",
    "RENAMED_TITLE_EVENT",
    "REOPENED_EVENT",
)
TIMELINE_ITEM_TYPES: tuple[str, ...] = COMMENT_ITEM_TYPES + STATE_ITEM_TYPES

IGNORED_TYPENAMES: frozenset[str] = frozenset(
    {
        "AssignedEvent",
        "CrossReferencedEvent",
        "LabeledEvent",
        "LockedEvent",
        "MentionedEvent",
        "ReferencedEvent",
        "SubscribedEvent",
        "UnassignedEvent",
        "UnlabeledEvent",
        "UnlockedEvent",
    }
)

_PAGE_SIZE = 100

_ISSUES_QUERY = """
query($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    issues(
      first: $first
      after: $after
      orderBy: {field: CREATED_AT, direction: DESC}
    ) {
      nodes { number }
      pageInfo { endCursor hasNextPage }
    }
  }
}
"""

_ISSUE_DATA_QUERY = """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) {
      id
      author { login }
      body
      title
      createdAt
      state
    }
  }
}
"""

_TIMELINE_QUERY = """
query(
  $owner: String!
  $name: String!
  $number: Int!
  $first: Int!
  $after: String
  $itemTypes: [IssueTimelineItemsItemType!]
) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) {
      timelineItems(first: $first, after: $after, itemTypes: $itemTypes) {
        nodes {
          __typename
          ... on ClosedEvent { id createdAt actor { login } }
          ... on ReopenedEvent { id createdAt actor { login } }
          ... on IssueComment { id databaseId createdAt actor: author { login } body }
          ... on RenamedTitleEvent {
            id
            createdAt
            actor { login }
            previousTitle
            currentTitle
          }
        }
        pageInfo { endCursor hasNextPage }
      }
    }
  }
}
"""


class _ActorNode(msgspec.Struct):
    login: str


class _ClosedNode(
    msgspec.Struct, tag_field="__typename", tag="ClosedEvent", rename="camel"
):
    id: str
    created_at: str
    actor: _ActorNode | None = None


class _ReopenedNode(
    msgspec.Struct, tag_field="__typename", tag="ReopenedEvent", rename="camel"
):
    id: str
    created_at: str
    actor: _ActorNode | None = None


class _IssueCommentNode(
    msgspec.Struct, tag_field="__typename", tag="IssueComment", rename="camel"
):
    id: str
    database_id: int
    created_at: str
    actor: _ActorNode | None = None
    body: str | None = None


class _RenamedTitleNode(
    msgspec.Struct, tag_field="__typename", tag="RenamedTitleEvent", rename="camel"
):
    id: str
    created_at: str
    previous_title: str
    current_title: str
    actor: _ActorNode | None = None


_TimelineNode = _ClosedNode | _ReopenedNode | _IssueCommentNode | _RenamedTitleNode

_HANDLED_TYPENAMES: frozenset[str] = frozenset(
    {"ClosedEvent", "ReopenedEvent", "IssueComment", "RenamedTitleEvent"}
)


def _actor(node: _ActorNode | None) -> Actor:
    # GitHub reports deleted accounts as a null actor.
    return Actor(github_login=node.login if node is not None else GHOST_LOGIN)


def _event_from_node(node: _TimelineNode) -> IssueEvent:
    match node:
        case _ClosedNode():
            return ClosedEvent()
        case _ReopenedNode():
            return ReopenedEvent()
        case _IssueCommentNode(database_id=number, body=body):
            return IssueCommentEvent(body=body or "", number=number)
        case _RenamedTitleNode(previous_title=previous, current_title=current):
            return RenamedTitleEvent(previous_title=previous, new_title=current)
        case _:
            raise UnrecognizedEventTypeError(type(node).__name__)


def classify_timeline_item(node: dict[str, typ.Any]) -> TimelineEntry | None:
    """Map one raw timeline node to ``(envelope, event)``.

    Returns ``None`` for known kinds that are not mirrored.

    Raises
    ------
    UnrecognizedEventTypeError
        If ``__typename`` is neither handled nor explicitly ignored.
    GitHubResponseShapeError
        If a handled node lacks required fields.

    """
    typename = node.get("__typename")
    if not isinstance(typename, str):
        raise GitHubResponseShapeError.missing("timelineItems.nodes.__typename")
    if typename in IGNORED_TYPENAMES:
        return None
    if typename not in _HANDLED_TYPENAMES:
        raise UnrecognizedEventTypeError(typename)

    try:
        decoded = msgspec.convert(node, _TimelineNode)
        created_at = parse_github_datetime(decoded.created_at)
    except (msgspec.ValidationError, ValueError) as exc:
        raise GitHubResponseShapeError.malformed(typename, str(exc)) from exc

    info = IssueEventInfo(
        github_id=decoded.id,
        created_at=created_at,
        actor=_actor(decoded.actor),
    )
    return (info, _event_from_node(decoded))


def _dig(data: dict[str, typ.Any], path: cabc.Sequence[str]) -> object:
    node: object = data
    for key in path:
        if not isinstance(node, dict):
            raise GitHubResponseShapeError.missing(".".join(path))
        node = node.get(key)
    return node


class GitHubIssueQuerier:
    """Build lazy sequences of issues and timeline events for a repository."""

    def __init__(self, transport: GitHubTransport) -> None:
        """Store the transport used for every query."""
        self._transport = transport

    def issues(self, owner: str, name: str) -> LazySequence[Issue]:
        """Return every issue of ``owner/name``, newest first."""

        async def _fetch(cursor: str | None) -> Page[dict[str, typ.Any]]:
            data = await self._transport.execute(
                _ISSUES_QUERY,
                {"owner": owner, "name": name, "first": _PAGE_SIZE, "after": cursor},
            )
            connection = _dig(data, ("repository", "issues"))
            return page_from_connection(connection, field="repository.issues")

        def _to_issue(node: dict[str, typ.Any]) -> Issue:
            number = node.get("number")
            if not isinstance(number, int):
                raise GitHubResponseShapeError.missing("issues.nodes.number")
            return Issue(owner=owner, name=name, issue_number=number)

        return lazy_map(paginate(_fetch), _to_issue)

    async def issue_data(self, issue: Issue) -> IssueData:
        """Fetch the current snapshot of ``issue``."""
        data = await self._transport.execute(
            _ISSUE_DATA_QUERY,
            {"owner": issue.owner, "name": issue.name, "number": issue.issue_number},
        )
        node = _dig(data, ("repository", "issue"))
        if not isinstance(node, dict):
            raise GitHubResponseShapeError.missing("repository.issue")

        github_id = node.get("id")
        created_at = node.get("createdAt")
        if not isinstance(github_id, str) or not isinstance(created_at, str):
            raise GitHubResponseShapeError.missing("repository.issue.id")

        author = node.get("author")
        login = author.get("login") if isinstance(author, dict) else None
        state = node.get("state")
        return IssueData(
            title=str(node.get("title") or ""),
            body=str(node.get("body") or ""),
            github_id=github_id,
            created_at=parse_github_datetime(created_at),
            author=Actor(github_login=login if isinstance(login, str) else GHOST_LOGIN),
            state=state if isinstance(state, str) else "OPEN",
        )

    def timeline(
        self,
        issue: Issue,
        item_types: cabc.Sequence[str] = TIMELINE_ITEM_TYPES,
    ) -> LazySequence[TimelineEntry]:
        """Return the chronological timeline of ``issue`` for ``item_types``."""
        variables_base: dict[str, typ.Any] = {
            "owner": issue.owner,
            "name": issue.name,
            "number": issue.issue_number,
            "first": _PAGE_SIZE,
            "itemTypes": list(item_types),
        }

        async def _fetch(cursor: str | None) -> Page[dict[str, typ.Any]]:
            data = await self._transport.execute(
                _TIMELINE_QUERY, {**variables_base, "after": cursor}
            )
            connection = _dig(data, ("repository", "issue", "timelineItems"))
            return page_from_connection(
                connection, field="repository.issue.timelineItems"
            )

        return compact(lazy_map(paginate(_fetch), classify_timeline_item))
