"""Place catalog with a read-through, write-through cache in front of the remote store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from redis.exceptions import RedisError

from campos.domain.errors import RemoteUnavailable
from campos.domain.places.cache import CacheEntry, PlaceCache
from campos.domain.places.models import CatalogResult, Place, PlaceDetail
from campos.domain.visits.timestamps import utcnow
from campos.infra.store import RemoteStore
from campos.obs import metrics as obs_metrics
from campos.settings import settings

logger = logging.getLogger(__name__)


def _sort_key(place: Place) -> str:
    return place.name.lower()


def _places_from_rows(rows: List[dict[str, Any]]) -> List[Place]:
    places = [Place.from_row(row) for row in rows]
    places.sort(key=_sort_key)
    return places


class PlaceCatalog:
    """Loads the read-only place catalog and approved per-place details.

    The cache only saves remote calls; a fresh cached copy is served as-is,
    a stale one only when the remote store is unreachable.
    """

    def __init__(
        self,
        store: RemoteStore,
        cache: Optional[PlaceCache] = None,
        *,
        catalog_ttl_seconds: Optional[int] = None,
        details_ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cache = cache or PlaceCache()
        self._catalog_ttl = catalog_ttl_seconds if catalog_ttl_seconds is not None else settings.catalog_cache_ttl_seconds
        self._details_ttl = details_ttl_seconds if details_ttl_seconds is not None else settings.details_cache_ttl_seconds
        self._clock = clock

    async def _cached(self, reader) -> Optional[CacheEntry]:
        try:
            return await reader
        except RedisError:
            logger.warning("place cache read failed", exc_info=True)
            return None

    async def _remember(self, writer) -> None:
        try:
            await writer
        except RedisError:
            logger.warning("place cache write failed", exc_info=True)

    async def load(self, force_refresh: bool = False) -> CatalogResult:
        now = self._clock()
        cached = await self._cached(self._cache.read_catalog())
        if cached is not None and not force_refresh and cached.is_fresh(now, self._catalog_ttl):
            obs_metrics.inc_catalog_load("cache")
            return CatalogResult(
                places=_places_from_rows(cached.rows),
                last_updated=cached.last_updated,
                source="cache",
                cache_valid=True,
            )
        try:
            rows = await self._store.select("places")
        except RemoteUnavailable as exc:
            if cached is None:
                obs_metrics.inc_catalog_load("failed")
                raise
            obs_metrics.inc_catalog_load("stale_cache")
            logger.warning("serving stale place catalog", extra={"age_s": (now - cached.last_updated).total_seconds()})
            return CatalogResult(
                places=_places_from_rows(cached.rows),
                last_updated=cached.last_updated,
                source="stale_cache",
                cache_valid=cached.is_fresh(now, self._catalog_ttl),
                error=exc.reason,
            )
        places = _places_from_rows(rows)
        await self._remember(self._cache.write_catalog([place.to_dict() for place in places], now))
        obs_metrics.inc_catalog_load("remote")
        logger.info("place catalog refreshed", extra={"count": len(places)})
        return CatalogResult(places=places, last_updated=now, source="remote", cache_valid=True)

    async def details(self, place_id: str, force_refresh: bool = False) -> List[PlaceDetail]:
        now = self._clock()
        cached = await self._cached(self._cache.read_details(place_id))
        if cached is not None and not force_refresh and cached.is_fresh(now, self._details_ttl):
            return [PlaceDetail.from_row(row) for row in cached.rows]
        try:
            rows = await self._store.select(
                "place_details",
                eq={"place_id": place_id, "approved": True},
                order_by="created_at",
                descending=True,
            )
        except RemoteUnavailable:
            if cached is None:
                raise
            logger.warning("serving stale place details", extra={"place_id": place_id})
            return [PlaceDetail.from_row(row) for row in cached.rows]
        details = [PlaceDetail.from_row(row) for row in rows]
        await self._remember(self._cache.write_details(place_id, [detail.to_dict() for detail in details], now))
        return details

    async def get(self, place_id: str) -> Optional[Place]:
        catalog = await self.load()
        for place in catalog.places:
            if place.id == place_id:
                return place
        return None

    async def invalidate(self) -> None:
        try:
            removed = await self._cache.clear()
        except RedisError:
            logger.warning("place cache clear failed", exc_info=True)
            return
        logger.info("place cache cleared", extra={"keys": removed})
