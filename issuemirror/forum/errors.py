"""Shared forum-layer error types."""

from __future__ import annotations


class TimezoneAwareRequiredError(ValueError):
    """Raised when datetime inputs lack timezone information."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(f"{context} must be timezone aware")

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating a bound column value was naive."""
        return cls("stored datetime values")


class NoncePersistError(RuntimeError):
    """Raised when a unique violation leaves no visible winning row."""

    def __init__(self, nonce_name: str, nonce_value: str) -> None:
        """Record the nonce that could not be materialised."""
        super().__init__(
            f"expected existing row with {nonce_name}={nonce_value!r} after rollback"
        )
        self.nonce_name = nonce_name
        self.nonce_value = nonce_value


class UnknownNonceColumnError(ValueError):
    """Raised when a nonce name does not map to a unique column."""

    def __init__(self, model: str, nonce_name: str) -> None:
        """Name the model and attribute that were requested."""
        super().__init__(f"{model} has no unique nonce column {nonce_name!r}")


class TopicNotFoundError(LookupError):
    """Raised when an operation references a topic that does not exist."""

    def __init__(self, topic_id: int) -> None:
        """Record the missing topic id."""
        super().__init__(f"topic {topic_id} does not exist")
        self.topic_id = topic_id


class PostNotFoundError(LookupError):
    """Raised when an operation references a post that does not exist."""

    def __init__(self, post_id: int) -> None:
        """Record the missing post id."""
        super().__init__(f"post {post_id} does not exist")
        self.post_id = post_id


class UserPersistError(RuntimeError):
    """Raised when a user upsert loses a race and no winner is visible."""

    def __init__(self, github_login: str) -> None:
        """Record the login that could not be resolved."""
        super().__init__(f"expected existing user {github_login!r} after rollback")
