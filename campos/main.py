"""FastAPI application wiring for the Campos visit core."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campos.api import ops, places, progress, visits
from campos.api.errors import install_error_handlers
from campos.domain.geofence.sockets import GeofenceNamespace
from campos.domain.progress.sockets import ProgressNamespace
from campos.infra import postgres
from campos.infra.schema import ensure_schema
from campos.infra.store import PostgresStore
from campos.obs import init as obs_init
from campos.runtime import build_core
from campos.settings import settings

logger = logging.getLogger(__name__)

geofence_namespace = GeofenceNamespace()
progress_namespace = ProgressNamespace()


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	await ensure_schema(pool)
	core = build_core(PostgresStore(pool))
	app.state.core = core
	geofence_namespace.bind(core)
	progress_namespace.attach(core.bus)
	logger.info("core services started")
	try:
		yield
	finally:
		progress_namespace.detach()
		await core.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Campos Visit Core", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins or ())
if not allow_origins or "*" in allow_origins:
	# Starlette disallows wildcard '*' with allow_credentials=True.
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(places.router)
app.include_router(visits.router)
app.include_router(progress.router)
app.include_router(ops.router)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
sio.register_namespace(geofence_namespace)
sio.register_namespace(progress_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
