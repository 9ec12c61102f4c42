# hlrcheck/app/services/ws_broker.py
"""
Redis Pub/Sub broker for batch progress fanout.

Architecture:
    Celery worker / batch runner  ->  publish_sync()  -> Redis
    FastAPI WebSocket route       ->  subscribe()     -> browser

Channels: batch:{kind}:{batch_id}
"""
from __future__ import annotations

import json
import asyncio
import logging
from collections import Counter
from typing import Optional, AsyncIterator, Any, Dict

import redis.asyncio as aioredis      # async redis client (redis>=4.x)
import redis as redis_sync           # sync redis for worker publish

from hlrcheck.app.config import settings

logger = logging.getLogger(__name__)

_async_client: Optional[aioredis.Redis] = None


def batch_channel(kind: str, batch_id: int) -> str:
    return f"batch:{kind}:{batch_id}"


def _get_async_client() -> aioredis.Redis:
    global _async_client
    if _async_client is None:
        _async_client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            encoding="utf-8",
            health_check_interval=30,
        )
    return _async_client


class WSBroker:
    """
    - publish_sync(channel, payload): sync publish for workers (no event loop)
    - subscribe(channel): async generator yielding decoded messages
    - stats(): connected clients / active subscriptions in this process
    """

    def __init__(self):
        self._subscriptions: Counter = Counter()

    def publish_sync(self, channel: str, payload: Dict[str, Any]) -> int:
        """Returns number of receivers; 0 when Redis is disabled or down."""
        if not settings.REDIS_URL:
            return 0
        try:
            r = redis_sync.from_url(settings.REDIS_URL, decode_responses=True)
            return int(r.publish(channel, json.dumps(payload, default=str)))
        except redis_sync.RedisError as e:
            logger.warning("ws_broker.publish_sync failed: %s", e)
            return 0

    async def subscribe(self, channel: str) -> AsyncIterator[Dict[str, Any]]:
        client = _get_async_client()
        pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._subscriptions[channel] += 1

        try:
            await pubsub.subscribe(channel)
            logger.info("ws subscribed: %s", channel)

            async for message in pubsub.listen():
                if not message or message.get("type") != "message":
                    continue
                raw = message.get("data")
                if raw is None:
                    continue
                try:
                    yield json.loads(raw)
                except ValueError:
                    yield {"_raw": raw}

        finally:
            self._subscriptions[channel] -= 1
            if self._subscriptions[channel] <= 0:
                del self._subscriptions[channel]
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.close()
            except (redis_sync.RedisError, asyncio.CancelledError):
                logger.debug("pubsub cleanup failed for %s", channel)
            logger.info("ws unsubscribed: %s", channel)

    def stats(self) -> Dict[str, int]:
        return {
            "connected_clients": sum(self._subscriptions.values()),
            "active_subscriptions": len(self._subscriptions),
        }

    async def close(self) -> None:
        global _async_client
        if _async_client is not None:
            await _async_client.close()
            _async_client = None


# Module-level singleton
ws_broker = WSBroker()
