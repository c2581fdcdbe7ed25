"""
Embedding cache keyed by normalized content.

Keys hash the input type together with a case- and whitespace-normalized
form of the text, so trivially different inputs share an entry. The cache is
purely an optimisation: every caller must behave the same with it empty.

The Redis tier does network I/O, so async callers go through ``aget_batch``
and ``aput_batch``, which run blocking backends in a worker thread.
"""

import asyncio
import hashlib
import json
import threading
import time
from collections import OrderedDict
from contextlib import nullcontext
from datetime import datetime
from functools import lru_cache
from typing import Protocol

import structlog
from redis import Redis
from redis.exceptions import RedisError

from nda_pipeline.config import get_settings
from nda_pipeline.models.retrieval import CachedEmbedding, CacheStats
from nda_pipeline.utils.text import normalize_for_cache

logger = structlog.get_logger(__name__)


def make_cache_key(text: str, input_type: str) -> str:
    digest = hashlib.sha256(normalize_for_cache(text).encode("utf-8")).hexdigest()[:16]
    return f"emb:{input_type}:{digest}"


class CacheBackend(Protocol):
    """Storage behind the embedding cache. ``blocking`` backends do I/O on every call."""

    blocking: bool

    def get(self, key: str) -> CachedEmbedding | None: ...
    def set(self, key: str, value: CachedEmbedding) -> None: ...
    def clear(self) -> None: ...
    def __len__(self) -> int: ...


class InMemoryCacheBackend:
    """LRU in-memory cache with per-entry TTL."""

    blocking = False

    def __init__(self, max_size: int = 10_000, ttl_seconds: float = 3600):
        self._cache: OrderedDict[str, tuple[float, CachedEmbedding]] = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str) -> CachedEmbedding | None:
        item = self._cache.get(key)
        if item is None:
            return None
        stored_at, value = item
        if time.monotonic() - stored_at > self._ttl:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return value

    def set(self, key: str, value: CachedEmbedding) -> None:
        if key in self._cache:
            self._cache.move_to_end(key)
        elif len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)
        self._cache[key] = (time.monotonic(), value)

    def clear(self) -> None:
        self._cache.clear()


class RedisCacheBackend:
    """Redis-backed cache tier. Connection failures degrade to misses."""

    blocking = True

    def __init__(self, url: str | None = None, ttl_seconds: int = 3600, client: Redis | None = None):
        self.url = url or get_settings().redis_url
        self.ttl = ttl_seconds
        self._client = client

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(self.url, decode_responses=True)
            logger.info("redis_connected", url=self.url)
        return self._client

    def __len__(self) -> int:
        try:
            return sum(1 for _ in self.client.scan_iter(match="emb:*", count=500))
        except RedisError as e:
            logger.warning("cache_size_failed", error=str(e))
            return 0

    def get(self, key: str) -> CachedEmbedding | None:
        try:
            value = self.client.get(key)
            if value:
                return CachedEmbedding.model_validate(json.loads(value))
            return None
        except (RedisError, json.JSONDecodeError, ValueError) as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

    def set(self, key: str, value: CachedEmbedding) -> None:
        try:
            self.client.setex(key, self.ttl, value.model_dump_json())
        except RedisError as e:
            logger.warning("cache_set_failed", key=key, error=str(e))

    def clear(self) -> None:
        try:
            keys = list(self.client.scan_iter(match="emb:*", count=500))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning("cache_clear_failed", error=str(e))


class EmbeddingCache:
    """
    Content-keyed embedding cache with hit/miss accounting.

    The lock covers the hit/miss counters and in-process backends. Blocking
    backends manage their own connections and are called outside it.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl_seconds: float = 3600,
        backend: CacheBackend | None = None,
    ):
        self.backend: CacheBackend = backend or InMemoryCacheBackend(max_entries, ttl_seconds)
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @property
    def blocking(self) -> bool:
        return getattr(self.backend, "blocking", False)

    def _backend_guard(self):
        return nullcontext() if self.blocking else self._lock

    def get(self, text: str, input_type: str = "document") -> CachedEmbedding | None:
        key = make_cache_key(text, input_type)
        with self._backend_guard():
            entry = self.backend.get(key)
        with self._lock:
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1
        return entry

    def put(self, text: str, input_type: str, embedding: list[float], tokens: int = 0) -> None:
        key = make_cache_key(text, input_type)
        entry = CachedEmbedding(embedding=embedding, tokens=tokens, cached_at=datetime.now())
        with self._backend_guard():
            self.backend.set(key, entry)

    def get_batch(self, texts: list[str], input_type: str = "document") -> dict[int, CachedEmbedding]:
        """Look up several texts. Returns a map of input index to cached entry."""
        found: dict[int, CachedEmbedding] = {}
        for i, text in enumerate(texts):
            entry = self.get(text, input_type)
            if entry is not None:
                found[i] = entry
        return found

    def put_batch(
        self,
        texts: list[str],
        input_type: str,
        embeddings: list[list[float]],
        tokens: int = 0,
    ) -> None:
        for text, embedding in zip(texts, embeddings):
            self.put(text, input_type, embedding, tokens)

    async def aget_batch(self, texts: list[str], input_type: str = "document") -> dict[int, CachedEmbedding]:
        """``get_batch`` for coroutines. Blocking backends are read in a worker thread."""
        if self.blocking:
            return await asyncio.to_thread(self.get_batch, texts, input_type)
        return self.get_batch(texts, input_type)

    async def aput_batch(
        self,
        texts: list[str],
        input_type: str,
        embeddings: list[list[float]],
        tokens: int = 0,
    ) -> None:
        """``put_batch`` for coroutines. Blocking backends are written in a worker thread."""
        if self.blocking:
            await asyncio.to_thread(self.put_batch, texts, input_type, embeddings, tokens)
            return
        self.put_batch(texts, input_type, embeddings, tokens)

    def stats(self) -> CacheStats:
        with self._backend_guard():
            size = len(self.backend)
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=size,
                hit_rate=self._hits / total if total else 0.0,
            )

    def clear(self) -> None:
        """Drop all entries and reset the counters."""
        with self._backend_guard():
            self.backend.clear()
        with self._lock:
            self._hits = 0
            self._misses = 0


@lru_cache()
def get_embedding_cache() -> EmbeddingCache:
    """Get the process-wide embedding cache."""
    settings = get_settings()
    backend: CacheBackend | None = None
    if settings.embedding_cache_backend == "redis":
        backend = RedisCacheBackend(settings.redis_url, ttl_seconds=settings.embedding_cache_ttl)
    return EmbeddingCache(
        max_entries=settings.embedding_cache_max_entries,
        ttl_seconds=settings.embedding_cache_ttl,
        backend=backend,
    )
