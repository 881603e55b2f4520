"""Apply one GitHub timeline event to its mirrored topic."""

from __future__ import annotations

import typing as typ

from issuemirror.forum.posts import add_post
from issuemirror.forum.storage import ActionCode, Post, PostType, Topic
from issuemirror.github.errors import UnrecognizedEventTypeError
from issuemirror.github.models import (
    ClosedEvent,
    IssueCommentEvent,
    RenamedTitleEvent,
    ReopenedEvent,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession

    from issuemirror.forum.nonce import AfterCreate, Materialized, NonceMaterializer
    from issuemirror.forum.storage import User
    from issuemirror.github.models import IssueEvent

NONCE_NAME = "remote_node_id"


def issue_topic_title(title: str, issue_number: int | None) -> str:
    """Return the forum title used for a mirrored issue."""
    return f"{title} (Issue #{issue_number})"


def renamed_body(previous_title: str, new_title: str) -> str:
    """Return the marker text recorded when an issue is renamed."""
    return (
        f'The title of this issue changed from "{previous_title}" to "{new_title}"'
    )


class GitHubIssuePoster:
    """Interpret timeline events for one topic, author and remote event id.

    A poster is bound to a single event envelope. Every variant maps to one
    nonce-keyed mutation so replaying the same event is a no-op.
    """

    def __init__(  # noqa: PLR0913
        self,
        materializer: NonceMaterializer,
        *,
        topic: Topic,
        author: User,
        github_id: str,
        created_at: dt.datetime,
    ) -> None:
        """Bind the poster to the target topic and event envelope."""
        self._materializer = materializer
        self._topic = topic
        self._author = author
        self._github_id = github_id
        self._created_at = created_at

    async def post_event(self, event: IssueEvent) -> bool:
        """Apply ``event`` and return True when it changed the forum.

        Raises
        ------
        UnrecognizedEventTypeError
            If ``event`` is not one of the mirrored event variants.

        """
        match event:
            case ClosedEvent():
                result = await self._update_closed(closed=True)
            case ReopenedEvent():
                result = await self._update_closed(closed=False)
            case IssueCommentEvent(body=body, number=number):
                result = await self._ensure_issue_post(
                    raw=body or "",
                    post_type=PostType.REGULAR,
                    remote_comment_number=number,
                )
            case RenamedTitleEvent(previous_title=previous, new_title=new_title):
                result = await self._ensure_issue_post(
                    raw=renamed_body(previous, new_title),
                    post_type=PostType.SMALL_ACTION,
                    action_code=ActionCode.RENAMED,
                    after_create=self._retitle(new_title),
                )
            case _:
                raise UnrecognizedEventTypeError(type(event).__name__)
        return result.created

    async def _update_closed(self, *, closed: bool) -> Materialized[Topic]:
        return await self._materializer.ensure_closed_state_with_nonce(
            topic_id=self._topic.id,
            closed=closed,
            nonce_name=NONCE_NAME,
            nonce_value=self._github_id,
            user_id=self._author.id,
            created_at=self._created_at,
        )

    async def _ensure_issue_post(
        self,
        *,
        raw: str,
        post_type: PostType,
        action_code: ActionCode | None = None,
        remote_comment_number: int | None = None,
        after_create: AfterCreate[Post] | None = None,
    ) -> Materialized[Post]:
        async def _build(session: AsyncSession) -> Post:
            return await add_post(
                session,
                topic_id=self._topic.id,
                user_id=self._author.id,
                raw=raw,
                created_at=self._created_at,
                post_type=post_type,
                action_code=action_code,
                remote_comment_number=remote_comment_number,
            )

        return await self._materializer.ensure_post_with_nonce(
            NONCE_NAME, self._github_id, _build, after_create
        )

    def _retitle(self, new_title: str) -> AfterCreate[Post]:
        async def _apply(session: AsyncSession, post: Post) -> None:
            topic = await session.get(Topic, post.topic_id)
            if topic is None:
                return
            topic.title = issue_topic_title(new_title, topic.remote_issue_number)
            await session.flush()

        return _apply
