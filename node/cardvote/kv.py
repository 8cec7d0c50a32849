"""Shared-store connection for the server routes.

``get_kv()`` returns the Redis client, or None when no REDIS_URL is
configured (the routes then answer as "not configured"). Tests swap in a
fakeredis client with ``set_kv_client``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def connect(url: str = REDIS_URL) -> Optional[redis.Redis]:
    global _client
    if url:
        _client = redis.from_url(url, decode_responses=True)
        logger.info("shared store configured")
    else:
        logger.info("REDIS_URL not set, shared store disabled")
    return _client


async def close() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
    _client = None


def get_kv() -> Optional[redis.Redis]:
    return _client


def set_kv_client(client: Optional[redis.Redis]) -> None:
    global _client
    _client = client


async def get_json(kv: redis.Redis, key: str) -> Any:
    raw = await kv.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("non-JSON value under %s ignored", key)
        return None


async def set_json(kv: redis.Redis, key: str, value: Any) -> None:
    await kv.set(key, json.dumps(value, ensure_ascii=False))
