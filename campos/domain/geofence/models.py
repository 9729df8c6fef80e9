"""Geofence models and the platform seam."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from campos.domain.places.models import Place


class DwellState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class MonitoredRegion:
    id: str
    latitude: float
    longitude: float
    radius_m: float

    @classmethod
    def from_place(cls, place: Place, radius_m: float) -> "MonitoredRegion":
        if place.coordinate is None:
            raise ValueError(f"place {place.id} has no coordinate")
        return cls(
            id=place.id,
            latitude=place.coordinate.latitude,
            longitude=place.coordinate.longitude,
            radius_m=radius_m,
        )

    def to_payload(self) -> dict:
        return {"id": self.id, "lat": self.latitude, "lon": self.longitude, "radius_m": self.radius_m}


class LocationPlatform(Protocol):
    """Device-side location facility.

    Calls are requests; results come back through the RegionWatcher
    callbacks (``on_positions``, ``on_region_state`` ...).
    """

    async def request_location(self) -> None:
        ...

    async def start_monitoring(self, region: MonitoredRegion) -> None:
        ...

    async def stop_monitoring(self, region_id: str) -> None:
        ...

    async def stop_all_monitoring(self) -> None:
        ...

    async def request_state(self, region_id: str) -> None:
        ...
