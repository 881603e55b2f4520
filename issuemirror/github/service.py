"""Issue-level facade over the querier and the GitHub write API."""

from __future__ import annotations

import typing as typ

from issuemirror.common.slug import parse_repo_slug
from issuemirror.lazy import LazySequence, merge_ordered

from .querier import COMMENT_ITEM_TYPES, STATE_ITEM_TYPES, GitHubIssueQuerier

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .client import GitHubTransport
    from .models import CreatedComment, CreatedIssue, Issue, IssueData, TimelineEntry

DEFAULT_TIMELINE_STREAMS: tuple[tuple[str, ...], ...] = (
    COMMENT_ITEM_TYPES,
    STATE_ITEM_TYPES,
)


def _earlier(left: TimelineEntry, right: TimelineEntry) -> bool:
    return left[0].created_at < right[0].created_at


class GitHubIssueService:
    """Read issues and their merged timelines; write comments and state.

    Each entry of ``timeline_streams`` becomes an independently paginated
    timeline query. The streams are merged chronologically so comments and
    state changes interleave in the order they happened while fetching at
    most one page ahead per stream.
    """

    def __init__(
        self,
        transport: GitHubTransport,
        querier: GitHubIssueQuerier | None = None,
        *,
        timeline_streams: cabc.Sequence[cabc.Sequence[str]] = DEFAULT_TIMELINE_STREAMS,
    ) -> None:
        """Bind the service to a transport and optional querier override."""
        self._transport = transport
        self._querier = querier or GitHubIssueQuerier(transport)
        self._timeline_streams = tuple(tuple(kinds) for kinds in timeline_streams)

    def issues(self, repo_name: str) -> LazySequence[Issue]:
        """Return every issue of ``repo_name``."""
        owner, name = parse_repo_slug(repo_name)
        return self._querier.issues(owner, name)

    async def issue_data(self, issue: Issue) -> IssueData:
        """Fetch a snapshot of ``issue``."""
        return await self._querier.issue_data(issue)

    def issue_events(self, issue: Issue) -> LazySequence[TimelineEntry]:
        """Return the chronological event feed of ``issue``."""
        streams = [
            self._querier.timeline(issue, kinds) for kinds in self._timeline_streams
        ]
        return merge_ordered(streams, _earlier)

    async def create_issue(self, repo_name: str, title: str, body: str) -> CreatedIssue:
        """Open an issue on GitHub."""
        return await self._transport.create_issue(repo_name, title, body)

    async def create_issue_comment(
        self, repo_name: str, issue_number: int, body: str
    ) -> CreatedComment:
        """Comment on a GitHub issue."""
        return await self._transport.add_comment(repo_name, issue_number, body)

    async def delete_issue_comment(self, repo_name: str, comment_id: int) -> None:
        """Delete a GitHub issue comment."""
        await self._transport.delete_comment(repo_name, comment_id)

    async def close_issue(self, repo_name: str, issue_number: int) -> None:
        """Close a GitHub issue."""
        await self._transport.close_issue(repo_name, issue_number)

    async def reopen_issue(self, repo_name: str, issue_number: int) -> None:
        """Reopen a GitHub issue."""
        await self._transport.reopen_issue(repo_name, issue_number)
