"""Thread-safe, TTL-bounded cache of processed documents.

Entries are keyed by `(document_id, user_id)`. A stored entry is stale once
more than `ttl_seconds` have passed since it was put; stale entries are left
in place and overwritten by the next `put`. An optional capacity bound evicts
the least recently used entry.
"""

from __future__ import annotations

from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import replace
import logging
import threading
import time
from typing import Callable

from docqa.index import IndexEntry


LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_MAX_ENTRIES = 128

CacheKey = tuple[str, str]


class DocumentIndexCache:
    """Map `(document_id, user_id)` to an `IndexEntry` with staleness and LRU eviction."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int | None = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be greater than zero")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, IndexEntry] = OrderedDict()
        self._pending: dict[CacheKey, Future[IndexEntry]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _is_stale(self, entry: IndexEntry) -> bool:
        return self._clock() - entry.created_at > self.ttl_seconds

    def _fresh_entry(self, key: CacheKey) -> IndexEntry | None:
        entry = self._entries.get(key)
        if entry is None or self._is_stale(entry):
            return None
        self._entries.move_to_end(key)
        return entry

    def get(self, document_id: str, user_id: str) -> IndexEntry | None:
        """Return the stored entry, or `None` when it is missing or stale."""

        with self._lock:
            return self._fresh_entry((document_id, user_id))

    def put(self, document_id: str, user_id: str, entry: IndexEntry) -> IndexEntry:
        """Store `entry` stamped with the current time, replacing any previous one."""

        key = (document_id, user_id)
        with self._lock:
            stamped = replace(entry, created_at=self._clock())
            self._entries[key] = stamped
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    LOGGER.debug("Evicted cached index for %s", evicted)
        return stamped

    def get_or_compute(
        self,
        document_id: str,
        user_id: str,
        compute: Callable[[], IndexEntry],
    ) -> IndexEntry:
        """Return a fresh entry, computing it at most once across concurrent callers.

        The first caller to miss runs `compute` and stores the result. Callers
        that miss on the same key while that computation is running wait for it
        and get the same entry, or the same exception if it failed. Failures are
        never cached.
        """

        key = (document_id, user_id)
        with self._lock:
            entry = self._fresh_entry(key)
            if entry is not None:
                return entry
            future = self._pending.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._pending[key] = future

        if not owner:
            LOGGER.debug("Waiting for in-flight index of %s", key)
            return future.result()

        try:
            entry = self.put(document_id, user_id, compute())
        except Exception as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(entry)
            return entry
        finally:
            with self._lock:
                self._pending.pop(key, None)
            if not future.done():
                future.cancel()

    def invalidate(self, document_id: str, user_id: str) -> None:
        with self._lock:
            self._entries.pop((document_id, user_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
