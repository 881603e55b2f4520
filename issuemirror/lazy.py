"""Restartable, pull-based async sequences.

Remote timelines can span many pages, so nothing here materialises a whole
sequence. A :class:`LazySequence` wraps a factory producing a fresh async
iterator; every ``async for`` re-invokes that factory, which makes a
sequence restartable whenever its source is.

Examples
--------
>>> import asyncio
>>> async def numbers():
...     for value in (1, None, 3):
...         yield value
>>> doubled = lazy_map(compact(LazySequence(numbers)), lambda x: x * 2)
>>> asyncio.run(doubled.collect())
[2, 6]

"""

from __future__ import annotations

import collections.abc as cabc
import contextlib
import dataclasses
import typing as typ

type IteratorFactory[T] = cabc.Callable[[], cabc.AsyncIterator[T]]
type LessThan[T] = cabc.Callable[[T, T], bool]


class LazySequence[T]:
    """Async iterable whose iteration is deferred until consumed."""

    __slots__ = ("_factory",)

    def __init__(self, factory: IteratorFactory[T]) -> None:
        """Store the factory invoked at the start of each iteration."""
        self._factory = factory

    def __aiter__(self) -> cabc.AsyncIterator[T]:
        """Start a fresh pass over the underlying source."""
        return self._factory()

    @classmethod
    def of(cls, items: cabc.Iterable[T]) -> LazySequence[T]:
        """Wrap an in-memory iterable (mostly useful for tests and fakes)."""
        snapshot = list(items)

        async def _iterate() -> cabc.AsyncIterator[T]:
            for item in snapshot:
                yield item

        return cls(_iterate)

    async def collect(self) -> list[T]:
        """Consume the whole sequence into a list."""
        return [item async for item in self]


@contextlib.asynccontextmanager
async def closing_iterator[T](
    source: cabc.AsyncIterable[T],
) -> cabc.AsyncIterator[cabc.AsyncIterator[T]]:
    """Iterate ``source`` and close its iterator when the block exits.

    Iterators without an ``aclose`` method are left as they are.
    """
    iterator = aiter(source)
    try:
        yield iterator
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


def lazy_map[T, U](
    seq: cabc.AsyncIterable[T], fn: cabc.Callable[[T], U]
) -> LazySequence[U]:
    """Apply ``fn`` to each item as it is pulled, preserving order."""

    async def _iterate() -> cabc.AsyncIterator[U]:
        async with closing_iterator(seq) as items:
            async for item in items:
                yield fn(item)

    return LazySequence(_iterate)


def compact[T](seq: cabc.AsyncIterable[T | None]) -> LazySequence[T]:
    """Drop ``None`` items.

    Only absent values are removed; exceptions raised by the source or by an
    upstream :func:`lazy_map` still propagate to the consumer.
    """

    async def _iterate() -> cabc.AsyncIterator[T]:
        async with closing_iterator(seq) as items:
            async for item in items:
                if item is not None:
                    yield item

    return LazySequence(_iterate)


@dataclasses.dataclass(slots=True)
class _Head[T]:
    """One pending item buffered from an input sequence."""

    value: T
    iterator: cabc.AsyncIterator[T]


async def _pull[T](iterator: cabc.AsyncIterator[T]) -> _Head[T] | None:
    try:
        value = await anext(iterator)
    except StopAsyncIteration:
        return None
    return _Head(value=value, iterator=iterator)


def merge_ordered[T](
    seqs: cabc.Sequence[cabc.AsyncIterable[T]], less_than: LessThan[T]
) -> LazySequence[T]:
    """K-way merge of already-ordered sequences.

    Exactly one item per input is buffered. The least head under
    ``less_than`` is emitted next; on ties the input listed first wins, so
    the merge is stable. Inputs may be unbounded or paginated. Every input
    iterator is closed when the merge ends, including when the consumer
    stops early or raises.
    """

    async def _iterate() -> cabc.AsyncIterator[T]:
        async with contextlib.AsyncExitStack() as stack:
            iterators = [
                await stack.enter_async_context(closing_iterator(seq)) for seq in seqs
            ]
            heads: list[_Head[T] | None] = [
                await _pull(iterator) for iterator in iterators
            ]
            while True:
                chosen: int | None = None
                for index, head in enumerate(heads):
                    if head is None:
                        continue
                    current = heads[chosen] if chosen is not None else None
                    if current is None or less_than(head.value, current.value):
                        chosen = index
                if chosen is None:
                    return
                head = typ.cast("_Head[T]", heads[chosen])
                yield head.value
                heads[chosen] = await _pull(head.iterator)

    return LazySequence(_iterate)


__all__ = [
    "LazySequence",
    "closing_iterator",
    "compact",
    "lazy_map",
    "merge_ordered",
]
