# hlrcheck/app/services/cache.py
"""
24h result cache for provider lookups.

Tier 1: Redis SETEX (or an in-process dict with expiry when Redis is down).
Tier 2: find_recent_results(): successful result rows younger than the TTL,
        looked up with chunked IN queries.
"""

import json
import logging
import time
import threading
from datetime import timedelta
from typing import Optional, Dict, Any, Iterable, List, Tuple

import redis as _redis
from sqlalchemy import select

from hlrcheck.app.config import settings, CACHE_LOOKUP_CHUNK
from hlrcheck.app.models.base import utcnow

# ---------------------------------------------------------
# Prometheus Metrics
# ---------------------------------------------------------
from prometheus_client import Counter, Histogram

CACHE_OP_TOTAL = Counter(
    "cache_operations_total",
    "Total cache operations performed",
    ["op", "backend", "result"]  # op=get/set, backend=redis/memory/db, result=hit/miss/ok/error
)

CACHE_LATENCY_SECONDS = Histogram(
    "cache_latency_seconds",
    "Latency for cache operations",
    ["op", "backend"]
)

logger = logging.getLogger(__name__)

# empty REDIS_URL: in-process cache only
REDIS = _redis.from_url(settings.REDIS_URL) if settings.REDIS_URL else None


# ---------------------------------------------------------
# IN-MEMORY FALLBACK (THREAD-SAFE, TTL-AWARE)
# ---------------------------------------------------------
_in_memory_cache: Dict[str, Tuple[float, Any]] = {}
_lock = threading.Lock()
_IN_MEMORY_MAX = 10_000  # prevents unbounded RAM usage


def cache_key(kind: str, value: str) -> str:
    return f"lookup:{kind}:{value.strip().lower()}"


def clear_memory_cache() -> None:
    with _lock:
        _in_memory_cache.clear()


# ---------------------------------------------------------
# GET
# ---------------------------------------------------------
def get_cached(kind: str, value: str) -> Optional[Dict]:
    key = cache_key(kind, value)

    if REDIS:
        with CACHE_LATENCY_SECONDS.labels(op="get", backend="redis").time():
            try:
                raw = REDIS.get(key)
                if raw:
                    try:
                        CACHE_OP_TOTAL.labels(op="get", backend="redis", result="hit").inc()
                        return json.loads(raw)
                    except ValueError:
                        CACHE_OP_TOTAL.labels(op="get", backend="redis", result="error").inc()
                        return None
                CACHE_OP_TOTAL.labels(op="get", backend="redis", result="miss").inc()
                return None
            except _redis.RedisError as e:
                CACHE_OP_TOTAL.labels(op="get", backend="redis", result="error").inc()
                logger.warning("redis cache get failed, using memory: %s", e)

    with CACHE_LATENCY_SECONDS.labels(op="get", backend="memory").time():
        with _lock:
            entry = _in_memory_cache.get(key)
            if entry is not None and entry[0] < time.time():
                _in_memory_cache.pop(key, None)
                entry = None
        if entry is None:
            CACHE_OP_TOTAL.labels(op="get", backend="memory", result="miss").inc()
            return None
        CACHE_OP_TOTAL.labels(op="get", backend="memory", result="hit").inc()
        return entry[1]


# ---------------------------------------------------------
# SET
# ---------------------------------------------------------
def set_cached(kind: str, value: str, payload: Dict, ttl: Optional[int] = None) -> bool:
    key = cache_key(kind, value)
    ttl = ttl or settings.VERIFICATION_CACHE_TTL

    if REDIS:
        with CACHE_LATENCY_SECONDS.labels(op="set", backend="redis").time():
            try:
                REDIS.setex(key, ttl, json.dumps(payload, default=str))
                CACHE_OP_TOTAL.labels(op="set", backend="redis", result="ok").inc()
                return True
            except _redis.RedisError as e:
                CACHE_OP_TOTAL.labels(op="set", backend="redis", result="error").inc()
                logger.warning("redis cache set failed, using memory: %s", e)

    with CACHE_LATENCY_SECONDS.labels(op="set", backend="memory").time():
        with _lock:
            if key not in _in_memory_cache and len(_in_memory_cache) >= _IN_MEMORY_MAX:
                # remove oldest inserted key (simple eviction)
                _in_memory_cache.pop(next(iter(_in_memory_cache)), None)
            _in_memory_cache[key] = (time.time() + ttl, payload)

        CACHE_OP_TOTAL.labels(op="set", backend="memory", result="ok").inc()
        return True


# ---------------------------------------------------------
# DB TIER
# ---------------------------------------------------------
def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def find_recent_results(db, model, column: str, values: Iterable[str], max_age_seconds: Optional[int] = None) -> Dict[str, Any]:
    """
    Latest successful row per value created within max_age_seconds.
    IN lists are split into CACHE_LOOKUP_CHUNK sized queries.
    """
    values = list(dict.fromkeys(v for v in values if v))
    if not values:
        return {}

    cutoff = utcnow() - timedelta(seconds=max_age_seconds or settings.VERIFICATION_CACHE_TTL)
    col = getattr(model, column)
    found: Dict[str, Any] = {}

    with CACHE_LATENCY_SECONDS.labels(op="get", backend="db").time():
        for chunk in _chunks(values, CACHE_LOOKUP_CHUNK):
            rows = db.execute(
                select(model)
                .where(col.in_(chunk), model.status == "success", model.created_at >= cutoff)
                .order_by(model.id.desc())
            ).scalars().all()
            for row in rows:
                found.setdefault(getattr(row, column), row)

    CACHE_OP_TOTAL.labels(op="get", backend="db", result="hit" if found else "miss").inc()
    return found
