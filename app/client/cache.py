import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from app.config import settings

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
Loader = Callable[[], Awaitable[Any]]


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    stale: bool = False


@dataclass
class Invalidation:
    key: QueryKey
    matched: tuple[QueryKey, ...]
    at: float = field(default_factory=time.monotonic)


def key_matches(prefix: QueryKey, key: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    """Client-side cache of query results keyed by ``(resource, *params)``.

    The cache is never written with mutation results. Mutations declare which
    keys became stale through :meth:`invalidate`, and the next :meth:`fetch`
    of a stale key goes back to the server. Concurrent fetches of one key
    share a single in-flight load.

    Parameters:
        stale_after: Seconds after which an entry is stale on its own;
            defaults to ``settings.cache_stale_after_seconds``.
        clock: Monotonic time source.
        history_size: Number of invalidations kept in :attr:`history`;
            defaults to ``settings.cache_history_size``.
    """

    def __init__(
        self,
        stale_after: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        history_size: int | None = None,
    ):
        self.stale_after = (
            settings.cache_stale_after_seconds if stale_after is None else stale_after
        )
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._in_flight: dict[QueryKey, asyncio.Task] = {}
        self._invalidated_in_flight: set[QueryKey] = set()
        self.history: deque[Invalidation] = deque(
            maxlen=settings.cache_history_size if history_size is None else history_size
        )

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def peek(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return None if entry is None else entry.value

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.stale:
            return True
        return self._clock() - entry.fetched_at >= self.stale_after

    async def fetch(self, key: QueryKey, loader: Loader) -> Any:
        """Return the cached value for ``key``, loading it when stale.

        Parameters:
            key: Query identity.
            loader: Coroutine function performing the request.

        Returns:
            The fresh value.
        """
        if not self.is_stale(key):
            return self._entries[key].value

        task = self._in_flight.get(key)
        if task is None or key in self._invalidated_in_flight:
            # A load invalidated mid-flight may predate a mutation; start over.
            self._invalidated_in_flight.discard(key)
            task = asyncio.ensure_future(self._load(key, loader))
            self._in_flight[key] = task
        # One caller giving up must not cancel the load other callers share.
        return await asyncio.shield(task)

    async def _load(self, key: QueryKey, loader: Loader) -> Any:
        task = asyncio.current_task()
        try:
            logger.debug("Loading %s", key)
            value = await loader()
            if self._in_flight.get(key) is task:
                self._entries[key] = CacheEntry(
                    value=value,
                    fetched_at=self._clock(),
                    stale=key in self._invalidated_in_flight,
                )
            else:
                logger.debug("Dropping superseded load of %s", key)
            return value
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]
                self._invalidated_in_flight.discard(key)

    def invalidate(self, key: QueryKey) -> tuple[QueryKey, ...]:
        """Mark every entry whose key starts with ``key`` as stale.

        A load already in flight for a matching key may predate the
        mutation: later fetches start a new load instead of joining it, and
        its own result is stored as stale.

        Parameters:
            key: Key prefix, e.g. ``("connections",)``.

        Returns:
            The keys that were marked stale.
        """
        matched = []
        for entry_key, entry in self._entries.items():
            if key_matches(key, entry_key):
                entry.stale = True
                matched.append(entry_key)
        for entry_key in self._in_flight:
            if key_matches(key, entry_key):
                self._invalidated_in_flight.add(entry_key)
                if entry_key not in matched:
                    matched.append(entry_key)
        self.history.append(Invalidation(key=key, matched=tuple(matched)))
        logger.debug("Invalidated %s -> %s", key, matched)
        return tuple(matched)

    def clear(self) -> None:
        self._entries.clear()
