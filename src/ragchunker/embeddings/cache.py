"""Content-addressed embedding cache with a pluggable backing store."""
from __future__ import annotations

import hashlib
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np

from ..telemetry import emit_cache_event


CacheKey = Tuple[str, str, str]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def content_hash(text: str, model: str) -> str:
    """SHA-256 of ``text + model`` so one text under two models never collides."""

    return hashlib.sha256((text + model).encode("utf-8")).hexdigest()


def as_vector(embedding: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """Return a read-only float32 copy of ``embedding``."""

    vector = np.array(embedding, dtype=np.float32, copy=True).reshape(-1)
    vector.setflags(write=False)
    return vector


@dataclass(frozen=True, slots=True)
class EmbeddingCacheEntry:
    tenant_id: str
    content_hash: str
    model: str
    embedding: np.ndarray
    token_count: int
    created_at: datetime
    accessed_at: datetime

    @property
    def key(self) -> CacheKey:
        return (self.tenant_id, self.content_hash, self.model)


@dataclass(frozen=True, slots=True)
class CacheStats:
    total_entries: int
    tenant_entries: Optional[int]
    total_size_bytes: int
    oldest_entry: Optional[datetime]
    newest_entry: Optional[datetime]


class CacheStore(ABC):
    """Storage capability behind :class:`EmbeddingCache`.

    Entries are replaced whole, never mutated, so a concurrent reader sees
    either the previous or the new entry for a key.
    """

    @abstractmethod
    async def get(self, key: CacheKey) -> Optional[EmbeddingCacheEntry]:
        """Return the entry for ``key`` with ``accessed_at`` refreshed, or ``None``."""

    @abstractmethod
    async def put(self, entry: EmbeddingCacheEntry) -> None:
        """Upsert ``entry``; an existing entry keeps its ``created_at``."""

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Remove entries last accessed before ``cutoff`` and return how many."""

    @abstractmethod
    async def stats(self, tenant_id: Optional[str] = None) -> CacheStats:
        """Summarise the stored entries."""


class InMemoryCacheStore(CacheStore):
    """Thread-safe LRU store with a capacity bound and idle TTL checked on read."""

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl: Optional[timedelta] = timedelta(days=30),
        *,
        clock: Clock = utcnow,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be a positive integer")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, EmbeddingCacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, key: CacheKey) -> Optional[EmbeddingCacheEntry]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self.ttl is not None and now - entry.accessed_at > self.ttl:
                del self._entries[key]
                self.misses += 1
                return None
            refreshed = replace(entry, accessed_at=now)
            self._entries[key] = refreshed
            self._entries.move_to_end(key)
            self.hits += 1
            return refreshed

    async def put(self, entry: EmbeddingCacheEntry) -> None:
        with self._lock:
            existing = self._entries.get(entry.key)
            if existing is not None:
                entry = replace(entry, created_at=existing.created_at)
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1

    async def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.accessed_at < cutoff]
            for key in stale:
                del self._entries[key]
            return len(stale)

    async def stats(self, tenant_id: Optional[str] = None) -> CacheStats:
        with self._lock:
            entries = list(self._entries.values())
        created = [entry.created_at for entry in entries]
        return CacheStats(
            total_entries=len(entries),
            tenant_entries=(
                sum(1 for entry in entries if entry.tenant_id == tenant_id) if tenant_id is not None else None
            ),
            total_size_bytes=sum(int(entry.embedding.nbytes) for entry in entries),
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class EmbeddingCache:
    """Best-effort facade over a :class:`CacheStore`.

    Store failures are logged and reported as a miss or a no-op so they
    never abort an embedding request.
    """

    def __init__(self, store: Optional[CacheStore] = None, *, clock: Clock = utcnow) -> None:
        self.store = store if store is not None else InMemoryCacheStore(clock=clock)
        self._clock = clock

    async def get(self, tenant_id: str, digest: str, model: str) -> Optional[EmbeddingCacheEntry]:
        try:
            return await self.store.get((tenant_id, digest, model))
        except Exception as exc:
            emit_cache_event("get", error=exc, tenant_id=tenant_id, model=model)
            return None

    async def put(
        self,
        tenant_id: str,
        digest: str,
        model: str,
        embedding: Union[Sequence[float], np.ndarray],
        token_count: int,
    ) -> bool:
        now = self._clock()
        entry = EmbeddingCacheEntry(
            tenant_id=tenant_id,
            content_hash=digest,
            model=model,
            embedding=as_vector(embedding),
            token_count=int(token_count),
            created_at=now,
            accessed_at=now,
        )
        try:
            await self.store.put(entry)
        except Exception as exc:
            emit_cache_event("put", error=exc, tenant_id=tenant_id, model=model)
            return False
        return True

    async def cleanup(self, older_than_days: int = 30) -> int:
        """Drop entries not accessed in ``older_than_days`` days."""

        cutoff = self._clock() - timedelta(days=older_than_days)
        try:
            removed = await self.store.delete_older_than(cutoff)
        except Exception as exc:
            emit_cache_event("cleanup", error=exc, older_than_days=older_than_days)
            return 0
        emit_cache_event("cleanup", removed=removed, older_than_days=older_than_days)
        return removed

    async def stats(self, tenant_id: Optional[str] = None) -> Optional[CacheStats]:
        try:
            return await self.store.stats(tenant_id)
        except Exception as exc:
            emit_cache_event("stats", error=exc, tenant_id=tenant_id)
            return None
