"""Redis connection management.

Provides a stable proxy object so imports like `from campos.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import redis.asyncio as redis

from campos.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def get_json(self, key: str) -> Optional[Any]:
		"""Return the decoded JSON document at ``key`` or None when missing/corrupt."""
		raw = await self._client.get(key)
		if raw is None:
			return None
		try:
			return json.loads(raw)
		except (TypeError, ValueError):
			return None

	async def set_json(self, key: str, value: Any, *, ex: Optional[int] = None) -> None:
		await self._client.set(key, json.dumps(value, separators=(",", ":")), ex=ex)

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
