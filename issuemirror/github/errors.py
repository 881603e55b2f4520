"""GitHub transport and classification errors."""

from __future__ import annotations


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an error response.

    This is the transport failure of the mirror: it is never retried here and
    propagates to whoever invoked the sync.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, *, api: str = "GraphQL") -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"GitHub {api} HTTP {status_code}", status_code=status_code)

    @classmethod
    def graphql_errors(cls, errors: object) -> GitHubAPIError:
        """Return an error for GraphQL `errors` payloads."""
        return cls(f"GitHub GraphQL errors: {errors}")

    @classmethod
    def request_failed(cls, exc: Exception) -> GitHubAPIError:
        """Return an error for connection-level failures."""
        return cls(f"GitHub request failed: {exc}")


class GitHubResponseShapeError(RuntimeError):
    """Raised when GitHub responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitHub response missing expected field: {field}")

    @classmethod
    def malformed(cls, typename: str, detail: str) -> GitHubResponseShapeError:
        """Return an error for a timeline node that failed to decode."""
        return cls(f"GitHub {typename} node is malformed: {detail}")


class GitHubConfigError(RuntimeError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def missing_token(cls) -> GitHubConfigError:
        """Return an error when no GitHub token is configured."""
        return cls("ISSUEMIRROR_GITHUB_TOKEN is required for GitHub API")

    @classmethod
    def empty_token(cls) -> GitHubConfigError:
        """Return an error when the provided token is empty."""
        return cls("GitHub token must be non-empty")


class UnrecognizedEventTypeError(RuntimeError):
    """Raised for remote event kinds the mirror has no mapping for.

    This signals a mismatch between the timeline query and the classifier (or
    a GitHub schema change) and must abort the sync rather than be dropped.
    """

    def __init__(self, kind: object) -> None:
        """Record the offending kind for diagnostics."""
        self.kind = kind
        super().__init__(f"Unexpected event type: {kind!r}")
