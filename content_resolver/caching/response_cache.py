"""In-memory response cache keyed by content identifier.

Entries are immutable and expire ``ttl_seconds`` after they were cached.
Expiry is enforced twice: ``get`` treats an expired entry as a miss, and
``sweep`` (run periodically by ``CacheJanitor``) physically removes them.

Keys are spread over a fixed number of shards, each with its own lock,
so unrelated keys never contend.
"""

from __future__ import annotations

import threading
import time
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DEFAULT_TTL_SECONDS: float = 24 * 60 * 60


@dataclass(frozen=True)
class CacheEntry:
    """A resolved payload and how it was obtained.

    Attributes:
        payload:            ``bytes`` for binary content, a decoded JSON value
                            for structured documents, ``str`` for raw text.
        content_type:       Content type to serve the payload with.
        cached_at:          Clock reading (seconds) when the entry was stored.
        gateway_used:       Base URL of the gateway that served the content.
        resolution_time_ms: How long the original resolution took.
    """

    payload: Any
    content_type: str
    cached_at: float
    gateway_used: str
    resolution_time_ms: float

    def age(self, now: float) -> float:
        return now - self.cached_at


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, CacheEntry] = {}


class ResponseCache:
    """TTL-bounded store of ``CacheEntry`` objects.

    Args:
        ttl_seconds: Maximum age at which an entry may still be served.
        shards:      Number of independently locked partitions.
        clock:       Time source in seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        shards: int = 16,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._shards = [_Shard() for _ in range(max(1, shards))]

        # Metrics
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _shard(self, content_id: str) -> _Shard:
        return self._shards[zlib.crc32(content_id.encode()) % len(self._shards)]

    def is_expired(self, entry: CacheEntry, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        return entry.age(now) >= self.ttl_seconds

    def get(self, content_id: str) -> CacheEntry | None:
        """Return the fresh entry for *content_id*, or ``None`` on a miss.

        An expired entry is reported as a miss but left in place for the
        next sweep.
        """
        shard = self._shard(content_id)
        with shard.lock:
            entry = shard.entries.get(content_id)
        if entry is None or self.is_expired(entry):
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(self, content_id: str, entry: CacheEntry) -> None:
        """Store *entry*, replacing any existing entry (last write wins)."""
        shard = self._shard(content_id)
        with shard.lock:
            shard.entries[content_id] = entry

    def store(
        self,
        content_id: str,
        payload: Any,
        content_type: str,
        gateway_used: str,
        resolution_time_ms: float,
    ) -> CacheEntry:
        """Build a ``CacheEntry`` stamped with the current clock and ``put`` it."""
        entry = CacheEntry(
            payload=payload,
            content_type=content_type,
            cached_at=self.clock(),
            gateway_used=gateway_used,
            resolution_time_ms=resolution_time_ms,
        )
        self.put(content_id, entry)
        return entry

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed.

        Each shard is snapshotted under its lock, scanned without it, then
        locked again only to delete.  An entry replaced by a newer ``put``
        in between is left alone.
        """
        now = self.clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                snapshot = list(shard.entries.items())
            expired = [(key, entry) for key, entry in snapshot if self.is_expired(entry, now)]
            if not expired:
                continue
            with shard.lock:
                for key, entry in expired:
                    if shard.entries.get(key) is entry:
                        del shard.entries[key]
                        removed += 1
        self.evictions += removed
        return removed

    def __contains__(self, content_id: object) -> bool:
        if not isinstance(content_id, str):
            return False
        shard = self._shard(content_id)
        with shard.lock:
            return content_id in shard.entries

    @property
    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        return sum(len(shard.entries) for shard in self._shards)

    def snapshot(self) -> dict:
        """Return a JSON-serializable summary for the stats endpoint."""
        return {
            "size": self.size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
