from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from campos.api.deps import get_core
from campos.domain.visits.timestamps import format_timestamp
from campos.infra.auth import AuthenticatedUser, get_current_user
from campos.runtime import CoreServices

router = APIRouter(prefix="/places", tags=["places"])


@router.get("", status_code=status.HTTP_200_OK)
async def list_places(
    refresh: bool = Query(default=False),
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    """
    Place catalog, served from cache while fresh.
    """
    result = await core.catalog.load(force_refresh=refresh)
    return {
        "places": [place.to_dict() for place in result.places],
        "last_updated": format_timestamp(result.last_updated) if result.last_updated else None,
        "source": result.source,
        "cache_valid": result.cache_valid,
        "error": result.error,
    }


@router.get("/{place_id}", status_code=status.HTTP_200_OK)
async def get_place(
    place_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    place = await core.catalog.get(place_id)
    if place is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="place_not_found")
    return place.to_dict()


@router.get("/{place_id}/details", status_code=status.HTTP_200_OK)
async def get_place_details(
    place_id: str,
    refresh: bool = Query(default=False),
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    """
    Approved community contributions for a place, newest first.
    """
    details = await core.catalog.details(place_id, force_refresh=refresh)
    return {"place_id": place_id, "details": [detail.to_dict() for detail in details]}
