"""Unit tests for mirror event logging and error categorisation."""

from __future__ import annotations

import datetime as dt
import logging

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from issuemirror.forum import NoncePersistError
from issuemirror.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    UnrecognizedEventTypeError,
)
from issuemirror.mirror import (
    ErrorCategory,
    IssueSyncResult,
    RepoSyncResult,
    SyncEventLogger,
    SyncEventType,
    categorize_error,
)
from issuemirror.mirror.observability import SyncRunContext

_LOGGER = "issuemirror.mirror.observability"


class TestCategorizeError:
    """Tests for error categorisation."""

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (GitHubAPIError.http_error(502), ErrorCategory.TRANSIENT),
            (GitHubAPIError.http_error(429), ErrorCategory.TRANSIENT),
            (GitHubAPIError.http_error(404, api="REST"), ErrorCategory.CLIENT_ERROR),
            (GitHubAPIError.request_failed(OSError("down")), ErrorCategory.TRANSIENT),
            (GitHubResponseShapeError.missing("data"), ErrorCategory.SCHEMA_DRIFT),
            (UnrecognizedEventTypeError("PinnedEvent"), ErrorCategory.SCHEMA_DRIFT),
            (GitHubConfigError.missing_token(), ErrorCategory.CONFIGURATION),
            (NoncePersistError("remote_node_id", "IC_1"), ErrorCategory.CONCURRENCY),
            (
                OperationalError("SELECT 1", {}, Exception("gone")),
                ErrorCategory.DATABASE_CONNECTIVITY,
            ),
            (
                IntegrityError("INSERT", {}, Exception("dup")),
                ErrorCategory.DATA_INTEGRITY,
            ),
            (RuntimeError("other"), ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, exc: BaseException, expected: ErrorCategory) -> None:
        """Each failure maps to the category alerts are routed by."""
        assert categorize_error(exc) == expected


class TestSyncEventLogger:
    """Tests for structured mirror log events."""

    @pytest.fixture
    def context(self) -> SyncRunContext:
        """Return a run context for octo/reef#7."""
        return SyncRunContext(
            repo_name="octo/reef",
            issue_number=7,
            started_at=dt.datetime(2000, 1, 1, tzinfo=dt.UTC),
        )

    def test_started_and_completed(
        self, caplog: pytest.LogCaptureFixture, context: SyncRunContext
    ) -> None:
        """Start and completion events carry repo, issue and counts."""
        result = IssueSyncResult(
            repo_name="octo/reef",
            issue_number=7,
            topic_id=3,
            topic_created=True,
            events_seen=4,
            events_applied=2,
        )

        with caplog.at_level(logging.INFO, logger=_LOGGER):
            SyncEventLogger().log_sync_started(context)
            SyncEventLogger().log_sync_completed(
                context, result, dt.timedelta(seconds=1.5)
            )

        started, completed = caplog.records
        assert SyncEventType.SYNC_STARTED in started.getMessage()
        assert "repo_name=octo/reef issue_number=7" in started.getMessage()
        message = completed.getMessage()
        assert SyncEventType.SYNC_COMPLETED in message
        assert "duration_seconds=1.500" in message
        assert "events_seen=4 events_applied=2" in message

    def test_failed_logs_error_with_category(
        self, caplog: pytest.LogCaptureFixture, context: SyncRunContext
    ) -> None:
        """Failures log at ERROR with the category and traceback."""
        error = GitHubAPIError.http_error(502)

        with caplog.at_level(logging.INFO, logger=_LOGGER):
            SyncEventLogger().log_sync_failed(context, error, dt.timedelta(0))

        (record,) = caplog.records
        assert record.levelno == logging.ERROR
        assert "error_category=transient" in record.getMessage()
        assert "error_type=GitHubAPIError" in record.getMessage()
        assert record.exc_info is not None

    def test_repo_and_reverse_events(self, caplog: pytest.LogCaptureFixture) -> None:
        """Repository totals and reverse postings are logged at INFO."""
        summary = RepoSyncResult(repo_name="octo/reef", issues_synced=2)

        with caplog.at_level(logging.INFO, logger=_LOGGER):
            SyncEventLogger().log_repo_completed(summary)
            SyncEventLogger().log_reverse_posted("comment", "octo/reef", 7, 12)

        repo, reverse = caplog.records
        assert SyncEventType.REPO_COMPLETED in repo.getMessage()
        assert "issues_synced=2" in repo.getMessage()
        assert "kind=comment" in reverse.getMessage()
        assert "post_id=12" in reverse.getMessage()
