"""GitHub API transport used by the mirror.

Reads go through GraphQL; the handful of writes used by reverse mirroring
go through the REST API because it returns the created node ids directly.
Neither path retries: rate limiting and backoff belong to the caller.
"""

from __future__ import annotations

import dataclasses
import os
import typing as typ

import httpx

from issuemirror.common.slug import parse_repo_slug

from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError
from .models import CreatedComment, CreatedIssue

_HTTP_ERROR_STATUS_THRESHOLD = 400


class GitHubTransport(typ.Protocol):
    """Interface the querier and issue service need from GitHub."""

    async def execute(
        self, query: str, variables: dict[str, typ.Any] | None = None
    ) -> dict[str, typ.Any]:
        """Run a GraphQL query and return its ``data`` object."""
        ...

    async def create_issue(self, repo_name: str, title: str, body: str) -> CreatedIssue:
        """Open a new issue."""
        ...

    async def add_comment(
        self, repo_name: str, issue_number: int, body: str
    ) -> CreatedComment:
        """Comment on an issue."""
        ...

    async def delete_comment(self, repo_name: str, comment_id: int) -> None:
        """Delete an issue comment."""
        ...

    async def close_issue(self, repo_name: str, issue_number: int) -> None:
        """Close an issue."""
        ...

    async def reopen_issue(self, repo_name: str, issue_number: int) -> None:
        """Reopen an issue."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubClientConfig:
    """Configuration for the GitHub API client."""

    token: str
    graphql_url: str = "https://api.github.com/graphql"
    api_url: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "issuemirror/0.1"

    @classmethod
    def from_env(cls) -> GitHubClientConfig:
        """Build configuration from ``ISSUEMIRROR_GITHUB_*`` variables."""
        token = os.environ.get("ISSUEMIRROR_GITHUB_TOKEN", "").strip()
        if not token:
            raise GitHubConfigError.missing_token()
        overrides: dict[str, str] = {}
        graphql_url = os.environ.get("ISSUEMIRROR_GITHUB_GRAPHQL_URL", "").strip()
        if graphql_url:
            overrides["graphql_url"] = graphql_url
        api_url = os.environ.get("ISSUEMIRROR_GITHUB_API_URL", "").strip()
        if api_url:
            overrides["api_url"] = api_url.rstrip("/")
        return cls(token=token, **overrides)


def _string_keyed(raw: object, *, field: str) -> dict[str, typ.Any]:
    if not isinstance(raw, dict):
        raise GitHubResponseShapeError.missing(field)
    result: dict[str, typ.Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            raise GitHubResponseShapeError.missing(field)
        result[key] = value
    return result


def _parse_graphql_payload(payload_raw: object) -> dict[str, typ.Any]:
    """Validate a GraphQL response and return its data field."""
    payload = _string_keyed(payload_raw, field="response")
    errors = payload.get("errors")
    if errors:
        raise GitHubAPIError.graphql_errors(errors)
    return _string_keyed(payload.get("data"), field="data")


def _require_str(payload: dict[str, typ.Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise GitHubResponseShapeError.missing(key)
    return value


def _require_int(payload: dict[str, typ.Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise GitHubResponseShapeError.missing(key)
    return value


class GitHubClient:
    """httpx implementation of :class:`GitHubTransport`."""

    def __init__(
        self,
        config: GitHubClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if not config.token.strip():
            raise GitHubConfigError.empty_token()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_s)
        self._headers = {
            "Authorization": f"Bearer {config.token}",
            "User-Agent": config.user_agent,
            "Accept": "application/vnd.github+json",
        }

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def execute(
        self, query: str, variables: dict[str, typ.Any] | None = None
    ) -> dict[str, typ.Any]:
        """Execute a GraphQL query and return the validated data field."""
        response = await self._send(
            "POST",
            self._config.graphql_url,
            json={"query": query, "variables": variables or {}},
            api="GraphQL",
        )
        return _parse_graphql_payload(response.json())

    async def create_issue(self, repo_name: str, title: str, body: str) -> CreatedIssue:
        """Open an issue and return its number, node id and URL."""
        payload = await self._rest(
            "POST",
            f"{self._repo_path(repo_name)}/issues",
            {"title": title, "body": body},
        )
        return CreatedIssue(
            number=_require_int(payload, "number"),
            node_id=_require_str(payload, "node_id"),
            url=_require_str(payload, "html_url"),
        )

    async def add_comment(
        self, repo_name: str, issue_number: int, body: str
    ) -> CreatedComment:
        """Comment on an issue and return the new comment's identifiers."""
        payload = await self._rest(
            "POST",
            f"{self._repo_path(repo_name)}/issues/{issue_number}/comments",
            {"body": body},
        )
        url = payload.get("html_url")
        return CreatedComment(
            id=_require_int(payload, "id"),
            node_id=_require_str(payload, "node_id"),
            url=url if isinstance(url, str) else None,
        )

    async def delete_comment(self, repo_name: str, comment_id: int) -> None:
        """Delete an issue comment by its database id."""
        await self._send(
            "DELETE",
            f"{self._repo_path(repo_name)}/issues/comments/{comment_id}",
            api="REST",
        )

    async def close_issue(self, repo_name: str, issue_number: int) -> None:
        """Mark an issue closed."""
        await self._set_issue_state(repo_name, issue_number, "closed")

    async def reopen_issue(self, repo_name: str, issue_number: int) -> None:
        """Mark an issue open."""
        await self._set_issue_state(repo_name, issue_number, "open")

    async def _set_issue_state(
        self, repo_name: str, issue_number: int, state: str
    ) -> None:
        await self._rest(
            "PATCH",
            f"{self._repo_path(repo_name)}/issues/{issue_number}",
            {"state": state},
        )

    def _repo_path(self, repo_name: str) -> str:
        owner, name = parse_repo_slug(repo_name)
        return f"{self._config.api_url}/repos/{owner}/{name}"

    async def _rest(
        self, method: str, url: str, body: dict[str, typ.Any]
    ) -> dict[str, typ.Any]:
        response = await self._send(method, url, json=body, api="REST")
        return _string_keyed(response.json(), field="response")

    async def _send(
        self,
        method: str,
        url: str,
        *,
        api: str,
        json: dict[str, typ.Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, url, json=json, headers=self._headers
            )
        except httpx.RequestError as exc:
            raise GitHubAPIError.request_failed(exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code, api=api)
        return response
