"""Turn cursor-paginated GitHub connections into one lazy sequence."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import typing as typ

from issuemirror.lazy import LazySequence

from .errors import GitHubResponseShapeError


@dataclasses.dataclass(frozen=True, slots=True)
class Page[T]:
    """One fetched page of a connection."""

    items: list[T]
    cursor: str | None
    has_next_page: bool


type PageFetcher[T] = cabc.Callable[[str | None], cabc.Awaitable[Page[T]]]


def paginate[T](fetch: PageFetcher[T]) -> LazySequence[T]:
    """Expose every item across all pages of ``fetch`` as a lazy sequence.

    ``fetch`` is called with ``None`` for the first page and with the previous
    page's end cursor afterwards. The next page is requested only once the
    consumer has drained the current one, so a fetch failure surfaces at that
    point. Iterating the returned sequence again starts over from page one.
    """

    async def _iterate() -> cabc.AsyncIterator[T]:
        cursor: str | None = None
        while True:
            page = await fetch(cursor)
            for item in page.items:
                yield item
            if not page.has_next_page or page.cursor is None:
                return
            cursor = page.cursor

    return LazySequence(_iterate)


def page_from_connection(
    connection: object, *, field: str
) -> Page[dict[str, typ.Any]]:
    """Build a :class:`Page` from a GraphQL ``{nodes, pageInfo}`` connection."""
    if not isinstance(connection, dict):
        raise GitHubResponseShapeError.missing(field)
    nodes = connection.get("nodes")
    if not isinstance(nodes, list):
        raise GitHubResponseShapeError.missing(f"{field}.nodes")

    page_info = connection.get("pageInfo")
    if not isinstance(page_info, dict):
        raise GitHubResponseShapeError.missing(f"{field}.pageInfo")
    end_cursor = page_info.get("endCursor")
    return Page(
        items=[node for node in nodes if isinstance(node, dict)],
        cursor=end_cursor if isinstance(end_cursor, str) else None,
        has_next_page=bool(page_info.get("hasNextPage")),
    )
