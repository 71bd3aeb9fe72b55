"""
Redis-backed result cache.

Keys follow ``xpp:{operation}:{query}:{filter}:{limit}``. Search-like
operations normalize the query (lower-case, alphanumerics only, single
spaces) so trivially different spellings share an entry; on an exact miss
they can also be served by a *fuzzy hit*, a stored entry of the same
operation and filter whose query is at least 80% similar and whose limit
differs by at most 10.

The cache never fails a request: without a client, after a failed ping, or
on any redis.RedisError (including socket timeouts) every call degrades to
a miss or a no-op and the error is logged at warning level.

with_cache() is the only place the lookup/compute/store policy lives.
"""

import json
import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from itertools import islice
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TypeVar

import redis

from xpp_mcp.config import IndexConfig
from xpp_mcp.core.models import SymbolKind
from xpp_mcp.search.fuzzy import similarity

logger = logging.getLogger(__name__)

KEY_PREFIX = "xpp"
ALL_FILTER = "all"
FUZZY_MIN_SIMILARITY = 0.8
FUZZY_MAX_LIMIT_DELTA = 10
DEFAULT_FUZZY_SAMPLE = 100

T = TypeVar("T")

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")


class CacheTier(Enum):
    """
    Expiry tiers by data volatility; values are the default TTLs in seconds.

    Attributes:
        SHORT: Search results (30 minutes)
        MEDIUM: Pattern analysis (2 hours)
        LONG: Class/table structure and completions (24 hours)
    """
    SHORT = 1800
    MEDIUM = 7200
    LONG = 86400


@dataclass(frozen=True)
class CacheKey:
    """Components of a canonical cache key."""
    operation: str
    query: str
    filter: str
    limit: int


def normalize_query(query: str) -> str:
    """Lower-case, trim, drop non-alphanumerics and collapse whitespace."""
    text = _NON_ALNUM.sub("", (query or "").lower().strip())
    return _SPACES.sub(" ", text).strip()


def kinds_filter(kinds: Optional[Sequence[SymbolKind]]) -> str:
    """Canonical filter component: sorted kind values joined by ',' or 'all'."""
    if not kinds:
        return ALL_FILTER
    return ",".join(sorted({k.value for k in kinds}))


def _raw(value: str) -> str:
    return (value or "").strip().replace(":", "")


def make_key(operation: str, query: str, kinds: Optional[Sequence[SymbolKind]] = None,
             limit: int = 0, normalize: bool = True, scope: Optional[str] = None) -> str:
    """
    Build a canonical cache key.

    Args:
        operation: Operation name (e.g., "search", "class")
        query: Query text or symbol name
        kinds: Kind filter (None means all kinds)
        limit: Result limit
        normalize: Normalize the query. Disable for exact-name lookups
            whose results depend on case.
        scope: Replaces the kind filter component for operations filtered
            by something else (e.g., a class name)
    """
    text = normalize_query(query) if normalize else _raw(query)
    filter_part = _raw(scope) if scope else kinds_filter(kinds)
    return f"{KEY_PREFIX}:{operation}:{text}:{filter_part}:{limit}"


def parse_key(key: str) -> Optional[CacheKey]:
    """Split a canonical key into its components, or None if malformed."""
    parts = key.split(":")
    if len(parts) != 5 or parts[0] != KEY_PREFIX:
        return None
    try:
        limit = int(parts[4])
    except ValueError:
        return None
    return CacheKey(operation=parts[1], query=parts[2], filter=parts[3], limit=limit)


def are_keys_compatible(a: CacheKey, b: CacheKey, max_limit_delta: int = FUZZY_MAX_LIMIT_DELTA) -> bool:
    """True if an entry for ``b`` may serve a request for ``a``."""
    return (
        a.operation == b.operation
        and a.filter == b.filter
        and abs(a.limit - b.limit) <= max_limit_delta
    )


class SymbolCache:
    """
    Tiered key/value cache in front of search and pattern analysis.

    Attributes:
        client: redis.Redis client (decode_responses=True), or None when
            caching is disabled
        fuzzy_sample: Maximum number of keys inspected per fuzzy lookup

    Thread Safety:
        This class IS thread-safe. The redis client pools connections and
        the statistics counters are guarded by a lock. Concurrent writes to
        one key are last-write-wins.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        ttls: Optional[Dict[CacheTier, int]] = None,
        fuzzy_sample: int = DEFAULT_FUZZY_SAMPLE,
    ):
        self.client = client
        self.fuzzy_sample = fuzzy_sample
        self._ttls = {tier: tier.value for tier in CacheTier}
        self._ttls.update(ttls or {})
        self._lock = threading.Lock()
        self._counters = {"hits": 0, "fuzzy_hits": 0, "misses": 0, "sets": 0, "errors": 0}

    @classmethod
    def from_config(cls, config: IndexConfig) -> "SymbolCache":
        """
        Connect to Redis as configured.

        A disabled cache, a malformed URL or an unreachable server yields a
        cache that is permanently a no-op.
        """
        ttls = {
            CacheTier.SHORT: config.ttl_short,
            CacheTier.MEDIUM: config.ttl_medium,
            CacheTier.LONG: config.ttl_long,
        }
        if not config.redis_enabled:
            logger.info("Redis caching disabled by configuration")
            return cls(None, ttls, config.fuzzy_sample)

        try:
            client = redis.Redis.from_url(
                config.redis_url,
                socket_timeout=config.redis_timeout,
                socket_connect_timeout=config.redis_timeout,
                decode_responses=True,
            )
            client.ping()
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis unavailable at {config.redis_url}, caching disabled: {e}")
            return cls(None, ttls, config.fuzzy_sample)

        logger.info(f"Connected to Redis cache at {config.redis_url}")
        return cls(client, ttls, config.fuzzy_sample)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def ttl(self, tier: CacheTier) -> int:
        return self._ttls[tier]

    def _count(self, counter: str) -> None:
        with self._lock:
            self._counters[counter] += 1

    def _failed(self, action: str, key: str, error: Exception) -> None:
        self._count("errors")
        logger.warning(f"Redis {action} failed for {key!r}, continuing without cache: {error}")

    # =========================================================================
    # Primitive operations
    # =========================================================================

    def _read(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            self._failed("get", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key!r}")
            return None

    def get(self, key: str) -> Optional[Any]:
        """JSON-decoded value stored at ``key``, or None on miss."""
        if not self.enabled:
            return None
        value = self._read(key)
        self._count("hits" if value is not None else "misses")
        return value

    def set(self, key: str, value: Any, tier: CacheTier = CacheTier.SHORT) -> bool:
        """Store ``value`` (JSON-encodable) with the tier's TTL; True on success."""
        if not self.enabled:
            return False
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Value for {key!r} is not JSON-serializable, not cached: {e}")
            return False
        try:
            self.client.set(key, payload, ex=self._ttls[tier])
        except redis.RedisError as e:
            self._failed("set", key, e)
            return False
        self._count("sets")
        return True

    def delete(self, key: str) -> None:
        if not self.enabled:
            return
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            self._failed("delete", key, e)

    def get_fuzzy(self, key: str) -> Optional[Any]:
        """
        Exact lookup, falling back to the most similar compatible key.

        Only keys of the same operation and filter are considered, at most
        ``fuzzy_sample`` of them. A candidate qualifies when its query is at
        least 80% similar and its limit differs by at most 10; the most
        similar one wins (ties: closer limit, then key order).
        """
        if not self.enabled:
            return None
        value = self._read(key)
        if value is not None:
            self._count("hits")
            return value

        wanted = parse_key(key)
        if wanted is None:
            self._count("misses")
            return None

        pattern = f"{KEY_PREFIX}:{wanted.operation}:*:{wanted.filter}:*"
        best: Optional[Tuple[float, int, str]] = None
        try:
            candidates = list(islice(self.client.scan_iter(match=pattern, count=self.fuzzy_sample),
                                     self.fuzzy_sample))
        except redis.RedisError as e:
            self._failed("scan", key, e)
            candidates = []

        for candidate in candidates:
            if candidate == key:
                continue
            parsed = parse_key(candidate)
            if parsed is None or not are_keys_compatible(wanted, parsed):
                continue
            score = similarity(wanted.query, parsed.query)
            if score < FUZZY_MIN_SIMILARITY:
                continue
            rank = (-score, abs(wanted.limit - parsed.limit), candidate)
            if best is None or rank < best:
                best = rank

        if best is not None:
            value = self._read(best[2])
            if value is not None:
                self._count("fuzzy_hits")
                logger.info(f"Fuzzy cache hit: {key!r} served by {best[2]!r} (similarity {-best[0]:.2f})")
                return value

        self._count("misses")
        return None

    # =========================================================================
    # Policy
    # =========================================================================

    def with_cache(
        self,
        key: str,
        tier: CacheTier,
        compute: Callable[[], T],
        fuzzy: bool = False,
        encode: Optional[Callable[[T], Any]] = None,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Tuple[T, bool]:
        """
        Return the cached value for ``key`` or compute and store it.

        Args:
            key: Canonical cache key
            tier: Expiry tier used when storing a computed value
            compute: Produces the value on a miss
            fuzzy: Allow a fuzzy hit on exact miss
            encode: Converts the value into JSON-compatible data
            decode: Converts cached data back into a value

        Returns:
            Tuple of (value, from_cache). A computed None is not stored.
        """
        cached = self.get_fuzzy(key) if fuzzy else self.get(key)
        if cached is not None:
            return (decode(cached) if decode else cached), True

        value = compute()
        if self.enabled and value is not None:
            self.set(key, encode(value) if encode else value, tier)
        return value, False

    def clear(self) -> int:
        """Delete every key of the ``xpp:`` namespace; returns the count removed."""
        if not self.enabled:
            return 0
        removed = 0
        try:
            batch = []
            for key in self.client.scan_iter(match=f"{KEY_PREFIX}:*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += self.client.delete(*batch)
                    batch = []
            if batch:
                removed += self.client.delete(*batch)
        except redis.RedisError as e:
            self._failed("clear", f"{KEY_PREFIX}:*", e)
        logger.info(f"Cleared {removed} cache entries")
        return removed

    def key_count(self) -> int:
        if not self.enabled:
            return 0
        try:
            return sum(1 for _ in self.client.scan_iter(match=f"{KEY_PREFIX}:*", count=500))
        except redis.RedisError as e:
            self._failed("scan", f"{KEY_PREFIX}:*", e)
            return 0

    def stats(self) -> Dict[str, Any]:
        """Enabled flag, counters and the number of keys in the namespace."""
        with self._lock:
            counters = dict(self._counters)
        return {"enabled": self.enabled, **counters, "keys": self.key_count()}
