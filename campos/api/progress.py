from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from campos.api.deps import get_core
from campos.domain.progress.models import ProgressSnapshot
from campos.infra.auth import AuthenticatedUser, get_current_user
from campos.runtime import CoreServices

router = APIRouter(prefix="/progress", tags=["progress"])


def _render(core: CoreServices, snapshot: ProgressSnapshot) -> Dict[str, Any]:
    payload = snapshot.to_dict()
    in_level, span = core.progress.curve.in_level_progress(snapshot.total_xp)
    payload["level_xp"] = in_level
    payload["level_span"] = span
    return payload


@router.get("", status_code=status.HTTP_200_OK)
async def get_progress(
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    """
    Recompute and return the user's XP, level, streaks and counts.
    """
    snapshot = await core.progress.recompute(current_user.id)
    return _render(core, snapshot)


@router.get("/achievements", status_code=status.HTTP_200_OK)
async def list_achievements(
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    achievements = await core.progress.achievements()
    unlocked = await core.progress.unlocked_ids(current_user.id)
    return {
        "achievements": [
            {**achievement.to_row(), "unlocked": achievement.id in unlocked} for achievement in achievements
        ]
    }


@router.post("/daily-reward", status_code=status.HTTP_200_OK)
async def claim_daily_reward(
    current_user: AuthenticatedUser = Depends(get_current_user),
    core: CoreServices = Depends(get_core),
) -> Dict[str, Any]:
    snapshot = await core.progress.claim_daily_reward(current_user.id)
    return _render(core, snapshot)
