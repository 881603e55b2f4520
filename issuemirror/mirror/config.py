"""Configuration for the issue mirror.

Usage
-----
Create a configuration with defaults:

>>> config = MirrorConfig()
>>> config.issue_tag
'github-issue'

Or load from environment variables:

>>> import os
>>> os.environ["ISSUEMIRROR_ISSUE_TAG"] = "issue"
>>> MirrorConfig.from_env().issue_tag
'issue'

"""

from __future__ import annotations

import dataclasses as dc
import os

from issuemirror.common.slug import DEFAULT_GITHUB_WEB_URL

DEFAULT_ISSUE_TAG = "github-issue"
DEFAULT_FORUM_BASE_URL = "http://localhost"


@dc.dataclass(frozen=True, slots=True)
class MirrorConfig:
    """Settings shared by forward and reverse mirroring.

    Attributes
    ----------
    issue_tag
        Tag applied to every topic that mirrors a GitHub issue.
    default_parent_category_id
        Parent for newly created repository categories when no hook supplies
        one. ``None`` creates top-level categories.
    forum_base_url
        Public base URL of the forum, used to link back from GitHub comments.
    github_web_url
        Browser base URL of GitHub, used to link topics to their issues.

    """

    issue_tag: str = DEFAULT_ISSUE_TAG
    default_parent_category_id: int | None = None
    forum_base_url: str = DEFAULT_FORUM_BASE_URL
    github_web_url: str = DEFAULT_GITHUB_WEB_URL

    @staticmethod
    def _parse_optional_positive_int(env_var: str) -> int | None:
        """Read an optional positive integer env var."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return None
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < 1:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @staticmethod
    def _read_str(env_var: str, default: str) -> str:
        raw = os.environ.get(env_var, "").strip()
        return raw or default

    @classmethod
    def from_env(cls) -> MirrorConfig:
        """Create configuration from environment variables.

        Reads ``ISSUEMIRROR_ISSUE_TAG``, ``ISSUEMIRROR_DEFAULT_PARENT_CATEGORY``,
        ``ISSUEMIRROR_FORUM_BASE_URL`` and ``ISSUEMIRROR_GITHUB_WEB_URL``.

        Raises
        ------
        ValueError
            If ``ISSUEMIRROR_DEFAULT_PARENT_CATEGORY`` is set but is not a
            positive integer.

        """
        return cls(
            issue_tag=cls._read_str("ISSUEMIRROR_ISSUE_TAG", DEFAULT_ISSUE_TAG),
            default_parent_category_id=cls._parse_optional_positive_int(
                "ISSUEMIRROR_DEFAULT_PARENT_CATEGORY"
            ),
            forum_base_url=cls._read_str(
                "ISSUEMIRROR_FORUM_BASE_URL", DEFAULT_FORUM_BASE_URL
            ).rstrip("/"),
            github_web_url=cls._read_str(
                "ISSUEMIRROR_GITHUB_WEB_URL", DEFAULT_GITHUB_WEB_URL
            ).rstrip("/"),
        )

    def post_url(self, topic_id: int, post_number: int) -> str:
        """Return the public URL of a forum post."""
        return f"{self.forum_base_url}/t/{topic_id}/{post_number}"
