"""Mirror GitHub issues into forum topics, and forum activity back to GitHub.

Forward sync is safe to run repeatedly: the topic and every timeline event
are materialised through nonce-keyed ensures, so a rerun after a failure
resumes at the first event that is still missing and a full backfill over an
already mirrored issue changes nothing.
"""

from __future__ import annotations

import dataclasses as dc
import logging
import typing as typ

from issuemirror.common.slug import issue_url, parse_repo_slug
from issuemirror.common.time import utcnow
from issuemirror.forum.errors import PostNotFoundError, TopicNotFoundError
from issuemirror.forum.mutex import (
    ENSURE_POST_REGION,
    ENSURE_TOPIC_REGION,
    NamedMutex,
    shared_mutex,
)
from issuemirror.forum.nonce import NonceMaterializer
from issuemirror.forum.posts import add_topic, first_post
from issuemirror.forum.storage import Post, PostType, Topic, User
from issuemirror.forum.users import GitHubUserSyncer
from issuemirror.github.models import Issue
from issuemirror.lazy import closing_iterator

from .categories import RepoCategoryService
from .config import MirrorConfig
from .observability import SyncEventLogger, SyncRunContext
from .poster import NONCE_NAME, GitHubIssuePoster, issue_topic_title

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from issuemirror.forum.nonce import Materialized
    from issuemirror.forum.storage import Category
    from issuemirror.forum.users import UserResolver
    from issuemirror.github.models import Actor, IssueData
    from issuemirror.github.service import GitHubIssueService

logger = logging.getLogger(__name__)


@dc.dataclass(frozen=True, slots=True)
class IssueSyncResult:
    """Summary of one issue synchronisation."""

    repo_name: str
    issue_number: int
    topic_id: int
    topic_created: bool = False
    events_seen: int = 0
    events_applied: int = 0


@dc.dataclass(slots=True)
class RepoSyncResult:
    """Summary of a repository backfill."""

    repo_name: str
    issues_synced: int = 0
    topics_created: int = 0
    events_applied: int = 0
    issues: list[IssueSyncResult] = dc.field(default_factory=list)

    def record(self, result: IssueSyncResult) -> None:
        """Fold one issue result into the totals."""
        self.issues.append(result)
        self.issues_synced += 1
        self.topics_created += int(result.topic_created)
        self.events_applied += result.events_applied


def format_reverse_comment(author_name: str, post_url: str, raw: str) -> str:
    """Return the GitHub comment body for a forum reply."""
    return f"[{author_name} posted]({post_url}):\n\n{raw}"


def issue_topic_raw(body: str, url: str) -> str:
    """Return the first post of a mirrored issue topic."""
    return f"{body}\n\n[GitHub]({url})"


class GitHubIssueSyncer:
    """Orchestrate forward and reverse mirroring for GitHub issues."""

    def __init__(  # noqa: PLR0913
        self,
        session_factory: async_sessionmaker[AsyncSession],
        issue_service: GitHubIssueService,
        *,
        user_resolver: UserResolver | None = None,
        categories: RepoCategoryService | None = None,
        config: MirrorConfig | None = None,
        mutex: NamedMutex | None = None,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Wire the syncer to storage, GitHub and its collaborators."""
        self._session_factory = session_factory
        self._issue_service = issue_service
        self._config = config or MirrorConfig()
        self._mutex = mutex or shared_mutex()
        self._materializer = NonceMaterializer(session_factory, self._mutex)
        self._users = user_resolver or GitHubUserSyncer(session_factory)
        self._categories = categories or RepoCategoryService(
            session_factory,
            default_parent_category_id=self._config.default_parent_category_id,
            mutex=self._mutex,
        )
        self._event_logger = event_logger or SyncEventLogger()

    async def sync_issue(
        self, repo_name: str, issue_number: int, repo_id: int | None = None
    ) -> IssueSyncResult:
        """Mirror one issue and its timeline into the forum."""
        started_at = utcnow()
        context = SyncRunContext(
            repo_name=repo_name, issue_number=issue_number, started_at=started_at
        )
        self._event_logger.log_sync_started(context)
        try:
            result = await self._sync_issue_inner(repo_name, issue_number, repo_id)
        except BaseException as exc:
            self._event_logger.log_sync_failed(context, exc, utcnow() - started_at)
            raise

        self._event_logger.log_sync_completed(context, result, utcnow() - started_at)
        return result

    async def _sync_issue_inner(
        self, repo_name: str, issue_number: int, repo_id: int | None
    ) -> IssueSyncResult:
        owner, name = parse_repo_slug(repo_name)
        issue = Issue(owner=owner, name=name, issue_number=issue_number)
        issue_data = await self._issue_service.issue_data(issue)
        category = await self._categories.ensure_category(
            repo_name, repo_id, issues=True
        )
        actors = _ActorCache(self._users)
        author = await actors.resolve(issue_data.author)
        topic_result = await self._ensure_issue_topic(
            repo_name, issue_number, issue_data, author, category
        )
        topic = topic_result.entity

        events_seen = 0
        events_applied = 0
        async with closing_iterator(self._issue_service.issue_events(issue)) as events:
            async for info, event in events:
                events_seen += 1
                poster = GitHubIssuePoster(
                    self._materializer,
                    topic=topic,
                    author=await actors.resolve(info.actor),
                    github_id=info.github_id,
                    created_at=info.created_at,
                )
                if await poster.post_event(event):
                    events_applied += 1

        return IssueSyncResult(
            repo_name=repo_name,
            issue_number=issue_number,
            topic_id=topic.id,
            topic_created=topic_result.created,
            events_seen=events_seen,
            events_applied=events_applied,
        )

    async def _ensure_issue_topic(  # noqa: PLR0913
        self,
        repo_name: str,
        issue_number: int,
        issue_data: IssueData,
        author: User,
        category: Category | None,
    ) -> Materialized[Topic]:
        url = issue_url(repo_name, issue_number, web_url=self._config.github_web_url)

        async def _build(session: AsyncSession) -> Topic:
            return await add_topic(
                session,
                title=issue_topic_title(issue_data.title, issue_number),
                raw=issue_topic_raw(issue_data.body, url),
                user_id=author.id,
                created_at=issue_data.created_at,
                category_id=category.id if category is not None else None,
                tags=[self._config.issue_tag],
                remote_issue_number=issue_number,
            )

        return await self._materializer.ensure_topic_with_nonce(
            NONCE_NAME, issue_data.github_id, _build
        )

    async def sync_repo(self, repo_name: str) -> RepoSyncResult:
        """Mirror every issue of ``repo_name``."""
        summary = RepoSyncResult(repo_name=repo_name)
        async for issue in self._issue_service.issues(repo_name):
            summary.record(await self.sync_issue(repo_name, issue.issue_number))
        self._event_logger.log_repo_completed(summary)
        return summary

    async def sync_known_repos(self) -> list[RepoSyncResult]:
        """Backfill every repository that already has a mapped category."""
        # Read the names up front; the stream must not stay open during writes.
        repo_names = await self._categories.repo_names().collect()
        return [await self.sync_repo(repo_name) for repo_name in repo_names]

    async def mirror_issue_post(self, post_id: int) -> bool:
        """Post a forum reply to its GitHub issue as a comment.

        Only replies (post number above one) of regular type in regular
        topics that are bound to an issue qualify; posts that already carry a
        remote id, including those mirrored from GitHub, are skipped. Returns
        True when a comment was created.
        """
        async with self._session_factory() as session:
            post, topic, user = await self._load_post(session, post_id)
        eligible = (
            topic.is_regular
            and post.post_number > 1
            and post.post_type == PostType.REGULAR
            and post.remote_node_id is None
            and not user.is_mirrored
        )
        if not eligible:
            return False

        repo_name = await self._categories.repo_name_for_topic(topic)
        issue_number = topic.remote_issue_number
        if repo_name is None or issue_number is None:
            return False

        body = format_reverse_comment(
            user.display_name,
            self._config.post_url(topic.id, post.post_number),
            post.raw,
        )
        async with (
            self._session_factory() as session,
            self._mutex.synchronize(ENSURE_POST_REGION, session),
        ):
            current = await session.get(Post, post_id)
            if current is None or current.remote_node_id is not None:
                return False
            created = await self._issue_service.create_issue_comment(
                repo_name, issue_number, body
            )
            current.remote_node_id = created.node_id
            current.remote_comment_number = created.id
            await session.commit()

        self._event_logger.log_reverse_posted(
            "comment", repo_name, issue_number, post_id
        )
        return True

    async def mirror_issue_topic(self, post_id: int) -> bool:
        """Open a GitHub issue for a new forum topic in a mapped category.

        The topic is retitled to include the issue number, its first post
        gains a link to the issue and the configured tag is added. Returns
        True when an issue was created.
        """
        async with self._session_factory() as session:
            post, topic, _user = await self._load_post(session, post_id)
        eligible = (
            topic.is_regular
            and post.post_number == 1
            and post.post_type == PostType.REGULAR
            and topic.remote_node_id is None
        )
        if not eligible:
            return False

        repo_name = await self._categories.repo_name_for_topic(topic)
        if repo_name is None:
            return False

        async with (
            self._session_factory() as session,
            self._mutex.synchronize(ENSURE_TOPIC_REGION, session),
        ):
            current_topic = await session.get(Topic, topic.id)
            opening = await first_post(session, topic.id)
            if (
                current_topic is None
                or opening is None
                or current_topic.remote_node_id is not None
            ):
                return False

            title = current_topic.title
            created = await self._issue_service.create_issue(
                repo_name, title, opening.raw
            )
            current_topic.title = issue_topic_title(title, created.number)
            current_topic.remote_node_id = created.node_id
            current_topic.remote_issue_number = created.number
            if self._config.issue_tag not in current_topic.tags:
                current_topic.tags = [*current_topic.tags, self._config.issue_tag]
            opening.raw = issue_topic_raw(opening.raw, created.url)
            await session.commit()

        self._event_logger.log_reverse_posted(
            "issue", repo_name, created.number, post_id
        )
        return True

    async def mirror_issue_state(self, topic_id: int, *, closed: bool) -> bool:
        """Close or reopen the GitHub issue to match the topic.

        Returns True when GitHub's state was changed.
        """
        async with self._session_factory() as session:
            topic = await session.get(Topic, topic_id)
            if topic is None:
                raise TopicNotFoundError(topic_id)

        repo_name = await self._categories.repo_name_for_topic(topic)
        issue_number = topic.remote_issue_number
        if repo_name is None or issue_number is None:
            return False

        owner, name = parse_repo_slug(repo_name)
        issue_data = await self._issue_service.issue_data(
            Issue(owner=owner, name=name, issue_number=issue_number)
        )

        async with (
            self._session_factory() as session,
            self._mutex.synchronize(ENSURE_POST_REGION, session),
        ):
            if closed and not issue_data.is_closed:
                await self._issue_service.close_issue(repo_name, issue_number)
            elif not closed and issue_data.is_closed:
                await self._issue_service.reopen_issue(repo_name, issue_number)
            else:
                return False

        self._event_logger.log_reverse_posted(
            "closed" if closed else "reopened", repo_name, issue_number, topic_id
        )
        return True

    async def delete_mirrored_comment(self, post_id: int) -> bool:
        """Delete the GitHub comment a forum post is mirrored with.

        Returns True when a comment was deleted.
        """
        async with self._session_factory() as session:
            post, topic, _user = await self._load_post(session, post_id)
        comment_id = post.remote_comment_number
        if post.remote_node_id is None or comment_id is None or post.post_number == 1:
            return False

        repo_name = await self._categories.repo_name_for_topic(topic)
        if repo_name is None:
            return False

        await self._issue_service.delete_issue_comment(repo_name, comment_id)
        logger.info(
            "Deleted GitHub comment %s on %s for post %s",
            comment_id,
            repo_name,
            post_id,
        )
        return True

    @staticmethod
    async def _load_post(
        session: AsyncSession, post_id: int
    ) -> tuple[Post, Topic, User]:
        post = await session.get(Post, post_id)
        if post is None:
            raise PostNotFoundError(post_id)
        topic = await session.get(Topic, post.topic_id)
        if topic is None:
            raise TopicNotFoundError(post.topic_id)
        user = await session.get_one(User, post.user_id)
        return post, topic, user


class _ActorCache:
    """Resolve each GitHub login to a forum user at most once per sync."""

    def __init__(self, users: UserResolver) -> None:
        self._users = users
        self._resolved: dict[str, User] = {}

    async def resolve(self, actor: Actor) -> User:
        login = actor.github_login
        user = self._resolved.get(login)
        if user is None:
            user = await self._users.ensure_user(login)
            self._resolved[login] = user
        return user
