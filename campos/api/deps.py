"""FastAPI dependencies resolving the core services for a request."""

from __future__ import annotations

from fastapi import Request

from campos.runtime import CoreServices


def get_core(request: Request) -> CoreServices:
    core = getattr(request.app.state, "core", None)
    if core is None:
        raise RuntimeError("core services not initialised")
    return core
