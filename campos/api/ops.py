"""Operations endpoints providing health checks, metrics, and admin controls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from campos.api.deps import get_core
from campos.infra import postgres
from campos.infra.redis import redis_client
from campos.runtime import CoreServices
from campos.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ops"])


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	token = settings.obs_admin_token
	if not token:
		# Fail closed: if no token is configured, no admin access is allowed.
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if _resolve_token(x_admin_token, authorization) != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	await require_admin(x_admin_token=x_admin_token, authorization=authorization)


async def _redis_ok(timeout: float = 0.2) -> bool:
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		return True
	except Exception:
		logger.warning("redis readiness check failed", exc_info=True)
		return False


async def _postgres_ok(timeout: float = 0.3) -> bool:
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
		return True
	except Exception:
		logger.warning("postgres readiness check failed", exc_info=True)
		return False


@router.get("/health/live")
async def health_live() -> Dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready() -> Response:
	checks: Dict[str, Any] = {"redis": await _redis_ok(), "postgres": await _postgres_ok()}
	ready = all(checks.values())
	return JSONResponse(
		content={"status": "ok" if ready else "degraded", "checks": checks},
		status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
	)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.post("/ops/places/cache/invalidate")
async def invalidate_place_cache(
	_: None = Depends(require_admin),
	core: CoreServices = Depends(get_core),
) -> Dict[str, str]:
	await core.catalog.invalidate()
	return {"status": "ok"}
