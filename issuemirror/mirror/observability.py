"""Structured log events and error categorisation for mirror runs.

Events are emitted through stdlib logging as ``[event] key=value`` lines so
log aggregators can parse them without a dedicated metrics pipeline.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import typing as typ

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from issuemirror.forum.errors import NoncePersistError, UserPersistError
from issuemirror.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    UnrecognizedEventTypeError,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from .syncer import IssueSyncResult, RepoSyncResult

logger = logging.getLogger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500
_HTTP_RATE_LIMITED = 429


class SyncEventType(enum.StrEnum):
    """Structured log event types for mirror observability."""

    SYNC_STARTED = "mirror.sync.started"
    SYNC_COMPLETED = "mirror.sync.completed"
    SYNC_FAILED = "mirror.sync.failed"
    REPO_COMPLETED = "mirror.repo.completed"
    REVERSE_POSTED = "mirror.reverse.posted"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    CONCURRENCY = "concurrency"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class SyncRunContext:
    """Shared context for one issue synchronisation."""

    repo_name: str
    issue_number: int
    started_at: dt.datetime


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (GitHubResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (UnrecognizedEventTypeError, ErrorCategory.SCHEMA_DRIFT),
    (GitHubConfigError, ErrorCategory.CONFIGURATION),
    (NoncePersistError, ErrorCategory.CONCURRENCY),
    (UserPersistError, ErrorCategory.CONCURRENCY),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Returns
    -------
    ErrorCategory
        The kind of failure, used to route alerts.

    """
    if isinstance(exc, GitHubAPIError):
        status = exc.status_code
        if status is None or status == _HTTP_RATE_LIMITED:
            return ErrorCategory.TRANSIENT
        if status >= _HTTP_SERVER_ERROR_THRESHOLD:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class SyncEventLogger:
    """Emit structured mirror events via Python logging."""

    def log_sync_started(self, context: SyncRunContext) -> None:
        """Log the start of an issue sync."""
        logger.info(
            "[%s] repo_name=%s issue_number=%d started_at=%s",
            SyncEventType.SYNC_STARTED,
            context.repo_name,
            context.issue_number,
            context.started_at.isoformat(),
        )

    def log_sync_completed(
        self,
        context: SyncRunContext,
        result: IssueSyncResult,
        duration: dt.timedelta,
    ) -> None:
        """Log a finished issue sync with its counts."""
        logger.info(
            "[%s] repo_name=%s issue_number=%d duration_seconds=%.3f "
            "topic_id=%s topic_created=%s events_seen=%d events_applied=%d",
            SyncEventType.SYNC_COMPLETED,
            context.repo_name,
            context.issue_number,
            duration.total_seconds(),
            result.topic_id,
            result.topic_created,
            result.events_seen,
            result.events_applied,
        )

    def log_sync_failed(
        self,
        context: SyncRunContext,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log a failed issue sync with its error category."""
        category = categorize_error(error)
        logger.error(
            "[%s] repo_name=%s issue_number=%d duration_seconds=%.3f "
            "error_type=%s error_category=%s error_message=%s",
            SyncEventType.SYNC_FAILED,
            context.repo_name,
            context.issue_number,
            duration.total_seconds(),
            type(error).__name__,
            category,
            str(error),
            exc_info=error,
        )

    def log_repo_completed(self, result: RepoSyncResult) -> None:
        """Log a finished repository backfill."""
        logger.info(
            "[%s] repo_name=%s issues_synced=%d topics_created=%d events_applied=%d",
            SyncEventType.REPO_COMPLETED,
            result.repo_name,
            result.issues_synced,
            result.topics_created,
            result.events_applied,
        )

    def log_reverse_posted(
        self, kind: str, repo_name: str, issue_number: int, post_id: int
    ) -> None:
        """Log a forum change mirrored back to GitHub."""
        logger.info(
            "[%s] kind=%s repo_name=%s issue_number=%d post_id=%d",
            SyncEventType.REVERSE_POSTED,
            kind,
            repo_name,
            issue_number,
            post_id,
        )
