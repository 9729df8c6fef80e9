"""Place catalog models."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from campos.domain.places.geo import haversine, valid_coordinate
from campos.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def distance_to(self, other: "Coordinate") -> float:
        return haversine(self.latitude, self.longitude, other.latitude, other.longitude)


@dataclass(frozen=True, slots=True)
class Position:
    """A location fix reported by the device."""

    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Place:
    id: str
    name: str
    region: Optional[str] = None
    locality: Optional[str] = None
    address: Optional[str] = None
    coordinate: Optional[Coordinate] = None

    @property
    def monitorable(self) -> bool:
        return self.coordinate is not None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Place":
        """Build a place from a remote row.

        A missing or out-of-range coordinate leaves ``coordinate`` unset so the
        place is skipped from geofencing instead of failing the whole catalog.
        """
        lat, lon = row.get("latitude"), row.get("longitude")
        coordinate: Optional[Coordinate] = None
        if lat is not None or lon is not None:
            if valid_coordinate(lat, lon):
                coordinate = Coordinate(float(lat), float(lon))  # type: ignore[arg-type]
            else:
                obs_metrics.inc_data_anomaly("invalid_coordinate")
                logger.warning("place has invalid coordinate", extra={"place_id": row.get("id")})
        return cls(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            region=row.get("region") or None,
            locality=row.get("locality") or None,
            address=row.get("address") or None,
            coordinate=coordinate,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "region": self.region,
            "locality": self.locality,
            "address": self.address,
            "latitude": self.coordinate.latitude if self.coordinate else None,
            "longitude": self.coordinate.longitude if self.coordinate else None,
        }


@dataclass(frozen=True, slots=True)
class PlaceDetail:
    """An approved user contribution describing a place."""

    id: str
    place_id: str
    description: str
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PlaceDetail":
        return cls(
            id=str(row["id"]),
            place_id=str(row["place_id"]),
            description=str(row.get("description") or ""),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "place_id": self.place_id, "description": self.description, "created_at": self.created_at}


@dataclass(slots=True)
class CatalogResult:
    places: List[Place]
    last_updated: Optional[datetime]
    source: str  # remote | cache | stale_cache
    cache_valid: bool
    error: Optional[str] = None

    def region_index(self) -> Dict[str, Optional[str]]:
        return {place.id: place.region for place in self.places}

    def monitorable(self) -> List[Place]:
        return [place for place in self.places if place.monitorable]
