"""Redis-backed read-through cache for the place catalog and place details.

Entries carry their own ``last_updated`` stamp and no Redis expiry, so a
copy past its TTL is still available as an offline fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from campos.domain.errors import DataAnomaly
from campos.domain.visits.timestamps import format_timestamp, parse_timestamp
from campos.infra.redis import RedisProxy, redis_client

logger = logging.getLogger(__name__)

CATALOG_KEY = "places:catalog"
DETAILS_PREFIX = "places:details:"


@dataclass(slots=True)
class CacheEntry:
	rows: List[dict[str, Any]]
	last_updated: datetime

	def is_fresh(self, now: datetime, ttl_seconds: int) -> bool:
		return (now - self.last_updated).total_seconds() < ttl_seconds


def _details_key(place_id: str) -> str:
	return f"{DETAILS_PREFIX}{place_id}"


class PlaceCache:
	def __init__(self, client: Optional[RedisProxy] = None) -> None:
		self._redis = client or redis_client

	async def _read(self, key: str) -> Optional[CacheEntry]:
		payload = await self._redis.get_json(key)
		if not isinstance(payload, dict):
			return None
		rows = payload.get("rows")
		if not isinstance(rows, list):
			return None
		try:
			stamp = parse_timestamp(payload.get("last_updated"))
		except DataAnomaly:
			logger.warning("discarding cache entry with bad stamp", extra={"key": key})
			return None
		return CacheEntry(rows=rows, last_updated=stamp)

	async def _write(self, key: str, rows: List[dict[str, Any]], now: datetime) -> None:
		await self._redis.set_json(key, {"rows": rows, "last_updated": format_timestamp(now)})

	async def read_catalog(self) -> Optional[CacheEntry]:
		return await self._read(CATALOG_KEY)

	async def write_catalog(self, rows: List[dict[str, Any]], now: datetime) -> None:
		await self._write(CATALOG_KEY, rows, now)

	async def read_details(self, place_id: str) -> Optional[CacheEntry]:
		return await self._read(_details_key(place_id))

	async def write_details(self, place_id: str, rows: List[dict[str, Any]], now: datetime) -> None:
		await self._write(_details_key(place_id), rows, now)

	async def clear(self) -> int:
		keys = [CATALOG_KEY]
		async for key in self._redis.scan_iter(match=f"{DETAILS_PREFIX}*"):
			keys.append(key)
		return int(await self._redis.delete(*keys))
