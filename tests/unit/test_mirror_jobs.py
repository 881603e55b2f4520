"""Unit tests for the mirroring Dramatiq actors."""

from __future__ import annotations

import contextlib
import dataclasses as dc
import typing as typ

import pytest

from issuemirror.mirror import IssueSyncResult, RepoSyncResult, jobs

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class _RecordingSyncer:
    """Stand-in syncer that records calls and returns canned results."""

    def __init__(self) -> None:
        self.calls: list[tuple[object, ...]] = []
        self.topic_mirrored = False

    async def sync_issue(
        self, repo_name: str, issue_number: int, repo_id: int | None = None
    ) -> IssueSyncResult:
        self.calls.append(("sync_issue", repo_name, issue_number, repo_id))
        return IssueSyncResult(
            repo_name=repo_name, issue_number=issue_number, topic_id=9
        )

    async def sync_repo(self, repo_name: str) -> RepoSyncResult:
        self.calls.append(("sync_repo", repo_name))
        if repo_name == "octo/broken":
            msg = "github down"
            raise RuntimeError(msg)
        return RepoSyncResult(repo_name=repo_name, issues_synced=4)

    async def mirror_issue_topic(self, post_id: int) -> bool:
        self.calls.append(("mirror_issue_topic", post_id))
        return self.topic_mirrored

    async def mirror_issue_post(self, post_id: int) -> bool:
        self.calls.append(("mirror_issue_post", post_id))
        return True

    async def mirror_issue_state(self, topic_id: int, *, closed: bool) -> bool:
        self.calls.append(("mirror_issue_state", topic_id, closed))
        return False


@dc.dataclass(slots=True)
class _Opened:
    syncer: _RecordingSyncer = dc.field(default_factory=_RecordingSyncer)
    urls: list[str | None] = dc.field(default_factory=list)


@pytest.fixture
def opened(monkeypatch: pytest.MonkeyPatch) -> _Opened:
    """Patch the jobs module to open a recording syncer."""
    state = _Opened()

    @contextlib.asynccontextmanager
    async def _open(database_url: str | None) -> cabc.AsyncIterator[_RecordingSyncer]:
        state.urls.append(database_url)
        yield state.syncer

    monkeypatch.setattr(jobs, "open_syncer", _open)
    return state


def test_sync_issue_job_returns_topic_id(opened: _Opened) -> None:
    """The issue actor forwards its arguments and returns the topic id."""
    topic_id = jobs.sync_issue_job(
        "octo/reef", 7, repo_id=11, database_url="sqlite+aiosqlite:///x.db"
    )

    assert topic_id == 9
    assert opened.syncer.calls == [("sync_issue", "octo/reef", 7, 11)]
    assert opened.urls == ["sqlite+aiosqlite:///x.db"]


def test_sync_repo_job_returns_issue_count(opened: _Opened) -> None:
    """The repository actor returns how many issues were synced."""
    assert jobs.sync_repo_job("octo/reef") == 4
    assert opened.urls == [None]


def test_mirror_post_job_falls_back_to_comment(opened: _Opened) -> None:
    """Replies are tried as topics first, then as comments."""
    assert jobs.mirror_post_job(12) is True
    assert opened.syncer.calls == [
        ("mirror_issue_topic", 12),
        ("mirror_issue_post", 12),
    ]


def test_mirror_post_job_stops_after_opening_issue(opened: _Opened) -> None:
    """Opening posts that created an issue are not also posted as comments."""
    opened.syncer.topic_mirrored = True

    assert jobs.mirror_post_job(12) is True
    assert opened.syncer.calls == [("mirror_issue_topic", 12)]


def test_mirror_topic_state_job(opened: _Opened) -> None:
    """The state actor forwards the requested state."""
    assert jobs.mirror_topic_state_job(3, True) is False  # noqa: FBT003
    assert opened.syncer.calls == [("mirror_issue_state", 3, True)]


def test_job_failures_are_logged_and_reraised(
    opened: _Opened, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Errors are logged with the exception attached, then propagate."""
    logged: list[tuple[str, BaseException]] = []
    monkeypatch.setattr(
        jobs,
        "log_exception",
        lambda _logger, message, exc: logged.append((message, exc)),
    )

    with pytest.raises(RuntimeError, match="github down"):
        jobs.sync_repo_job("octo/broken")

    assert opened.syncer.calls == [("sync_repo", "octo/broken")]
    ((message, exc),) = logged
    assert message == "Mirror job failed: RuntimeError: github down"
    assert isinstance(exc, RuntimeError)


def test_stub_broker_allowed_by_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """A truthy opt-in variable permits the in-memory broker."""
    monkeypatch.setenv(jobs.STUB_BROKER_ENV, " Yes ")

    assert jobs.stub_broker_allowed() is True


def test_stub_broker_allowed_under_pytest(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test runs may use the stub broker without opting in."""
    monkeypatch.delenv(jobs.STUB_BROKER_ENV, raising=False)

    assert jobs.stub_broker_allowed() is True


def test_actors_bind_to_the_job_broker() -> None:
    """Every actor is declared on the broker chosen at import time."""
    broker = jobs.job_broker()

    assert broker is jobs.job_broker()
    for actor in (
        jobs.sync_issue_job,
        jobs.sync_repo_job,
        jobs.mirror_post_job,
        jobs.mirror_topic_state_job,
    ):
        assert actor.broker is broker
