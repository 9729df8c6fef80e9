"""Tables backing the remote store, created idempotently at startup."""

from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS places (
	id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
	name TEXT NOT NULL,
	locality TEXT,
	region TEXT,
	address TEXT,
	latitude DOUBLE PRECISION,
	longitude DOUBLE PRECISION
);

CREATE TABLE IF NOT EXISTS visits (
	id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
	user_id TEXT NOT NULL,
	place_id TEXT NOT NULL,
	created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_visits_user_place_created ON visits(user_id, place_id, created_at);

CREATE TABLE IF NOT EXISTS achievements (
	id TEXT PRIMARY KEY,
	title TEXT NOT NULL,
	description TEXT NOT NULL DEFAULT '',
	condition TEXT NOT NULL,
	xp_reward INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS unlocked_achievements (
	id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
	user_id TEXT NOT NULL,
	achievement_id TEXT NOT NULL,
	unlocked_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_unlocked_user ON unlocked_achievements(user_id);

CREATE TABLE IF NOT EXISTS daily_access (
	id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
	user_id TEXT NOT NULL,
	last_access TIMESTAMPTZ NOT NULL,
	streak INTEGER NOT NULL DEFAULT 1,
	last_claimed_reward DATE,
	reward_xp_total INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_daily_access_user ON daily_access(user_id);

CREATE TABLE IF NOT EXISTS progress_snapshots (
	id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
	user_id TEXT NOT NULL,
	total_xp INTEGER NOT NULL DEFAULT 0,
	level INTEGER NOT NULL DEFAULT 1,
	next_level_xp INTEGER NOT NULL DEFAULT 0,
	places_visited INTEGER NOT NULL DEFAULT 0,
	regions_visited INTEGER NOT NULL DEFAULT 0,
	day_streak INTEGER NOT NULL DEFAULT 0,
	updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_progress_user ON progress_snapshots(user_id);

CREATE TABLE IF NOT EXISTS place_details (
	id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
	place_id TEXT NOT NULL,
	user_id TEXT NOT NULL,
	description TEXT NOT NULL,
	approved BOOLEAN NOT NULL DEFAULT FALSE,
	created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_place_details_place ON place_details(place_id, approved, created_at DESC);
"""


async def ensure_schema(pool: asyncpg.pool.Pool) -> None:
	async with pool.acquire() as conn:
		await conn.execute(SCHEMA_SQL)
	logger.info("schema ensured")
