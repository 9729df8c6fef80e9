"""Authentication helpers for FastAPI endpoints and device sockets.

Bearer JWTs (HS256, settings.secret_key) are always accepted. The
``X-User-Id`` header is only honoured in development.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campos.infra import jwt as jwt_helper
from campos.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	display_name = payload.get("name") or payload.get("display_name")
	return AuthenticatedUser(
		id=str(payload["sub"]).strip(),
		display_name=str(display_name) if display_name is not None else None,
	)


def resolve_socket_user(auth: Optional[dict], headers: dict[str, str]) -> Optional[str]:
	"""Return the user id for a device connection, or None when unauthenticated."""
	payload = auth or {}
	token = payload.get("token")
	if not token:
		header = headers.get("authorization") or ""
		if header.lower().startswith("bearer "):
			token = header[7:].strip()
	if token:
		try:
			return verify_access_jwt(str(token)).id
		except HTTPException:
			return None
	if settings.is_dev():
		user_id = payload.get("userId") or payload.get("user_id") or headers.get("x-user-id")
		if user_id:
			return str(user_id)
	return None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow a simple header. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id)
	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def socket_headers(environ: dict) -> dict[str, str]:
	"""Lower-cased request headers of a Socket.IO handshake."""
	scope = environ.get("asgi.scope", environ)
	headers: dict[str, str] = {}
	for key, value in scope.get("headers", []) or []:
		name = key.decode() if isinstance(key, bytes) else str(key)
		headers[name.lower()] = value.decode() if isinstance(value, bytes) else str(value)
	return headers
