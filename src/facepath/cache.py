"""Content-addressed result cache with single-flight coalescing.

Maps face fingerprints to attribute sets. Concurrent requests for the
same uncached fingerprint share one computation: the first caller
(the leader) runs it, later callers wait on the leader's pending result.

Example:
    >>> cache = ResultCache(capacity=1024)
    >>> attrs, outcome = cache.get_or_compute(key, lambda: analyzer.infer(crop))
    >>> outcome
    <LookupOutcome.COMPUTED: 'computed'>
    >>> cache.get_or_compute(key, lambda: analyzer.infer(crop))[1]
    <LookupOutcome.HIT: 'hit'>
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections import OrderedDict
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from facepath.attributes import AttributeSet
from facepath.errors import CacheError

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


class LookupOutcome(str, Enum):
    HIT = "hit"
    COALESCED = "coalesced"
    COMPUTED = "computed"


@dataclass
class CacheEntry:
    fingerprint: str
    attributes: AttributeSet
    last_access: float


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    coalesced: int
    evictions: int
    size: int
    capacity: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.coalesced
        return (self.hits + self.coalesced) / total if total else 0.0


class ResultCache:
    """Bounded LRU cache of fingerprint -> AttributeSet.

    All state is guarded by one lock held only for dictionary updates;
    computations run outside it. Entries are inserted whole, so a reader
    never sees a partially written entry. The cache outlives pipeline
    runs and may be shared between them.

    Args:
        capacity: Maximum entries. 0 keeps nothing but still coalesces
            concurrent computations.
    """

    def __init__(self, capacity: int = 1024):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._entries

    def get(self, fingerprint: str) -> Optional[AttributeSet]:
        """Return the cached attributes, or None on a miss."""
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                self._misses += 1
                return None
            self._touch_locked(entry)
            self._hits += 1
            return entry.attributes

    def put(self, fingerprint: str, attributes: AttributeSet) -> AttributeSet:
        """Store attributes for a fingerprint.

        Idempotent: if an entry already exists it is kept, and the stored
        value is returned so concurrent writers converge on one value.
        """
        if not isinstance(attributes, AttributeSet):
            raise TypeError(f"Expected AttributeSet, got {type(attributes).__name__}")
        with self._lock:
            return self._store_locked(fingerprint, attributes)

    def extend(self, fingerprint: str, attributes: AttributeSet) -> AttributeSet:
        """Add attribute kinds to an entry, storing it if absent.

        Kinds the entry already holds are kept unchanged.

        Returns:
            The entry's attributes after the update.
        """
        if not isinstance(attributes, AttributeSet):
            raise TypeError(f"Expected AttributeSet, got {type(attributes).__name__}")
        with self._lock:
            existing = self._entries.get(fingerprint)
            if existing is None:
                return self._store_locked(fingerprint, attributes)
            existing.attributes = existing.attributes.merge(attributes)
            self._touch_locked(existing)
            return existing.attributes

    def get_or_compute(
        self,
        fingerprint: str,
        compute: Callable[[], AttributeSet],
        store_if: Optional[Callable[[AttributeSet], bool]] = None,
    ) -> Tuple[AttributeSet, LookupOutcome]:
        """Return cached attributes, computing them at most once concurrently.

        Args:
            fingerprint: Cache key.
            compute: Produces the attributes on a miss. Runs in the
                calling thread of the first requester only.
            store_if: Predicate deciding whether a computed result is
                stored. Waiters receive the result either way.

        Returns:
            Tuple of (attributes, outcome).

        Raises:
            CacheError: The leader computation was abandoned before finishing.
            Exception: Whatever ``compute`` raised, delivered to every caller
                sharing that computation.
        """
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is not None:
                self._touch_locked(entry)
                self._hits += 1
                return entry.attributes, LookupOutcome.HIT
            pending = self._inflight.get(fingerprint)
            leader = pending is None
            if leader:
                pending = Future()
                self._inflight[fingerprint] = pending
                self._misses += 1
            else:
                self._coalesced += 1

        if not leader:
            try:
                return pending.result(), LookupOutcome.COALESCED
            except CancelledError as exc:
                raise CacheError(
                    f"Shared computation for {fingerprint[:12]} was abandoned"
                ) from exc

        try:
            result = compute()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(fingerprint, None)
            if isinstance(exc, Exception):
                pending.set_exception(exc)
            else:
                pending.cancel()
            raise

        with self._lock:
            if store_if is None or store_if(result):
                result = self._store_locked(fingerprint, result)
            self._inflight.pop(fingerprint, None)
        pending.set_result(result)
        return result, LookupOutcome.COMPUTED

    def pending(self) -> int:
        """Number of computations currently in flight."""
        with self._lock:
            return len(self._inflight)

    def clear(self) -> None:
        """Drop all entries. In-flight computations are unaffected."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                coalesced=self._coalesced,
                evictions=self._evictions,
                size=len(self._entries),
                capacity=self._capacity,
            )

    def _touch_locked(self, entry: CacheEntry) -> None:
        self._entries.move_to_end(entry.fingerprint)
        entry.last_access = time.monotonic()

    def _store_locked(self, fingerprint: str, attributes: AttributeSet) -> AttributeSet:
        if self._capacity == 0:
            return attributes
        existing = self._entries.get(fingerprint)
        if existing is not None:
            self._touch_locked(existing)
            return existing.attributes
        self._entries[fingerprint] = CacheEntry(fingerprint, attributes, time.monotonic())
        while len(self._entries) > self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted cache entry {evicted[:12]}")
        return attributes

    def save(self, path: Union[str, Path]) -> None:
        """Write entries to a JSON file, least recently used first.

        Raises:
            CacheError: If the file cannot be written.
        """
        path = Path(path)
        with self._lock:
            entries = [
                {"fingerprint": e.fingerprint, "attributes": e.attributes.to_dict()}
                for e in self._entries.values()
            ]
        data: Dict[str, Any] = {
            "entries": entries,
            "_version": {
                "format": CACHE_FORMAT_VERSION,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        }
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as exc:
            raise CacheError(f"Cannot write cache file {path}: {exc}") from exc
        logger.info(f"Saved {len(entries)} cache entries to {path}")

    @classmethod
    def load(cls, path: Union[str, Path], capacity: int = 1024) -> "ResultCache":
        """Restore a cache written by ``save``.

        Only the most recent ``capacity`` entries are kept.

        Raises:
            CacheError: Missing, unreadable or corrupt file.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise CacheError(f"Cannot read cache file {path}: {exc}") from exc

        cache = cls(capacity=capacity)
        try:
            version = data.get("_version", {}).get("format")
            if version != CACHE_FORMAT_VERSION:
                raise ValueError(f"unsupported format version {version!r}")
            for item in data["entries"]:
                cache.put(str(item["fingerprint"]), AttributeSet.from_dict(item["attributes"]))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CacheError(f"Corrupt cache file {path}: {exc}") from exc
        logger.info(f"Loaded {len(cache)} cache entries from {path}")
        return cache


__all__ = ["LookupOutcome", "CacheEntry", "CacheStats", "ResultCache"]
