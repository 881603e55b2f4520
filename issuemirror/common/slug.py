"""Repository slug and issue URL helpers.

Slugs are GitHub identifiers in ``owner/name`` format. They are not
filesystem paths, so parse them here rather than with ``pathlib``.
"""

from __future__ import annotations

DEFAULT_GITHUB_WEB_URL = "https://github.com"


def repo_slug(owner: str, name: str) -> str:
    """Build a repository slug from owner and name.

    Examples
    --------
    >>> repo_slug("octo", "reef")
    'octo/reef'

    """
    return f"{owner}/{name}"


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Split ``owner/name`` into its two parts.

    Raises
    ------
    ValueError
        If the slug is not in ``owner/name`` format.

    Examples
    --------
    >>> parse_repo_slug("owner/name")
    ('owner', 'name')

    """
    owner, sep, name = slug.partition("/")
    if not sep or not owner or not name or "/" in name:
        msg = f"Invalid repository slug: expected 'owner/name', got {slug!r}"
        raise ValueError(msg)
    return owner, name


def short_repo_name(slug: str) -> str:
    """Return the ``name`` half of a slug."""
    return parse_repo_slug(slug)[1]


def issue_url(
    slug: str, issue_number: int, *, web_url: str = DEFAULT_GITHUB_WEB_URL
) -> str:
    """Return the canonical browser URL of an issue.

    Examples
    --------
    >>> issue_url("owner/name", 101)
    'https://github.com/owner/name/issues/101'

    """
    return f"{web_url.rstrip('/')}/{slug}/issues/{issue_number}"
