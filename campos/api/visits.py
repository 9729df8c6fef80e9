from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from campos.api.deps import get_core
from campos.domain.places.models import Position
from campos.infra.auth import AuthenticatedUser, get_current_user
from campos.runtime import CoreServices

router = APIRouter(prefix="/visits", tags=["visits"])


class MarkVisitRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    accuracy_m: Optional[float] = None


@router.get("", status_code=status.HTTP_200_OK)
async def list_visited(
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    place_ids = await core.ledger.visited_place_ids(current_user.id)
    return {"place_ids": sorted(place_ids)}


@router.get("/{place_id}", status_code=status.HTTP_200_OK)
async def visit_status(
    place_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    visited = await core.ledger.is_visited(current_user.id, place_id)
    today = visited and await core.ledger.has_visit_today(current_user.id, place_id)
    return {"place_id": place_id, "visited": visited, "visited_today": today}


@router.post("/{place_id}", status_code=status.HTTP_201_CREATED)
async def mark_visited(
    place_id: str,
    payload: MarkVisitRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    """
    Mark a place visited; the reported fix must be close enough and precise enough.
    """
    place = await core.catalog.get(place_id)
    if place is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="place_not_found")
    position = Position(payload.lat, payload.lon, payload.accuracy_m)
    visit_id = await core.ledger.mark_visited_nearby(current_user.id, place, position)
    return {"place_id": place_id, "visit_id": visit_id}


@router.delete("/{place_id}", status_code=status.HTTP_200_OK)
async def unmark_visited(
    place_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    removed = await core.ledger.unmark_visited(current_user.id, place_id)
    return {"place_id": place_id, "removed": removed}
