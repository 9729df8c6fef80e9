"""Row-level access to the remote system of record.

Domain services talk to a ``RemoteStore``: select/insert/update/delete per
logical table with simple equality, lower-bound and membership filters.
``PostgresStore`` is the production implementation over the asyncpg pool.
Timestamps cross this boundary as ISO-8601 strings with an explicit offset
and calendar days as ``YYYY-MM-DD`` strings, whatever the backing store
uses natively.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

import asyncpg

from campos.domain.errors import RemoteUnavailable
from campos.domain.visits.timestamps import parse_day, parse_timestamp
from campos.infra import postgres
from campos.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# column -> wire kind, per table
TABLES: Dict[str, Dict[str, str]] = {
	"places": {
		"id": "text",
		"name": "text",
		"locality": "text",
		"region": "text",
		"address": "text",
		"latitude": "float",
		"longitude": "float",
	},
	"visits": {
		"id": "text",
		"user_id": "text",
		"place_id": "text",
		"created_at": "timestamp",
	},
	"achievements": {
		"id": "text",
		"title": "text",
		"description": "text",
		"condition": "text",
		"xp_reward": "int",
	},
	"unlocked_achievements": {
		"id": "text",
		"user_id": "text",
		"achievement_id": "text",
		"unlocked_at": "timestamp",
	},
	"daily_access": {
		"id": "text",
		"user_id": "text",
		"last_access": "timestamp",
		"streak": "int",
		"last_claimed_reward": "date",
		"reward_xp_total": "int",
	},
	"progress_snapshots": {
		"id": "text",
		"user_id": "text",
		"total_xp": "int",
		"level": "int",
		"next_level_xp": "int",
		"places_visited": "int",
		"regions_visited": "int",
		"day_streak": "int",
		"updated_at": "timestamp",
	},
	"place_details": {
		"id": "text",
		"place_id": "text",
		"user_id": "text",
		"description": "text",
		"approved": "bool",
		"created_at": "timestamp",
	},
}


class RemoteStore(Protocol):
	async def select(
		self,
		table: str,
		*,
		eq: Optional[Mapping[str, Any]] = None,
		gte: Optional[Mapping[str, Any]] = None,
		in_: Optional[Mapping[str, Sequence[Any]]] = None,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Row]:
		...

	async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
		...

	async def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> int:
		...

	async def delete(
		self,
		table: str,
		*,
		eq: Optional[Mapping[str, Any]] = None,
		in_: Optional[Mapping[str, Sequence[Any]]] = None,
	) -> int:
		...


def _columns(table: str) -> Dict[str, str]:
	try:
		return TABLES[table]
	except KeyError:
		raise ValueError(f"unknown table: {table}") from None


def _check(table: str, names: Iterable[str]) -> None:
	columns = _columns(table)
	for name in names:
		if name not in columns:
			raise ValueError(f"unknown column {table}.{name}")


def _quote(name: str) -> str:
	return f'"{name}"'


def encode_value(kind: str, value: Any) -> Any:
	"""Convert a wire value to what asyncpg expects for the column kind."""
	if value is None:
		return None
	if kind == "timestamp" and isinstance(value, str):
		return parse_timestamp(value)
	if kind == "date" and isinstance(value, str):
		return parse_day(value)
	return value


def decode_row(record: Mapping[str, Any]) -> Row:
	row: Row = {}
	for key, value in record.items():
		if isinstance(value, datetime):
			row[key] = value.isoformat()
		elif isinstance(value, date):
			row[key] = value.isoformat()
		else:
			row[key] = value
	return row


def _where(
	table: str,
	args: List[Any],
	eq: Optional[Mapping[str, Any]],
	gte: Optional[Mapping[str, Any]],
	in_: Optional[Mapping[str, Sequence[Any]]],
) -> str:
	columns = _columns(table)
	clauses: List[str] = []
	for name, value in (eq or {}).items():
		_check(table, [name])
		if value is None:
			clauses.append(f"{_quote(name)} IS NULL")
			continue
		args.append(encode_value(columns[name], value))
		clauses.append(f"{_quote(name)} = ${len(args)}")
	for name, value in (gte or {}).items():
		_check(table, [name])
		args.append(encode_value(columns[name], value))
		clauses.append(f"{_quote(name)} >= ${len(args)}")
	for name, values in (in_ or {}).items():
		_check(table, [name])
		args.append([encode_value(columns[name], v) for v in values])
		clauses.append(f"{_quote(name)} = ANY(${len(args)})")
	return f" WHERE {' AND '.join(clauses)}" if clauses else ""


def build_select(
	table: str,
	*,
	eq: Optional[Mapping[str, Any]] = None,
	gte: Optional[Mapping[str, Any]] = None,
	in_: Optional[Mapping[str, Sequence[Any]]] = None,
	order_by: Optional[str] = None,
	descending: bool = False,
	limit: Optional[int] = None,
) -> Tuple[str, List[Any]]:
	columns = _columns(table)
	args: List[Any] = []
	select_list = ", ".join(_quote(name) for name in columns)
	sql = f"SELECT {select_list} FROM {_quote(table)}"
	sql += _where(table, args, eq, gte, in_)
	if order_by is not None:
		_check(table, [order_by])
		sql += f" ORDER BY {_quote(order_by)} {'DESC' if descending else 'ASC'}"
	if limit is not None:
		args.append(int(limit))
		sql += f" LIMIT ${len(args)}"
	return sql, args


def build_insert(table: str, row: Mapping[str, Any]) -> Tuple[str, List[Any]]:
	columns = _columns(table)
	names = [name for name in row if not (name == "id" and row[name] is None)]
	_check(table, names)
	args = [encode_value(columns[name], row[name]) for name in names]
	placeholders = ", ".join(f"${idx}" for idx in range(1, len(names) + 1))
	returning = ", ".join(_quote(name) for name in columns)
	sql = (
		f"INSERT INTO {_quote(table)} ({', '.join(_quote(name) for name in names)}) "
		f"VALUES ({placeholders}) RETURNING {returning}"
	)
	return sql, args


def build_update(table: str, values: Mapping[str, Any], eq: Mapping[str, Any]) -> Tuple[str, List[Any]]:
	if not values:
		raise ValueError("update requires at least one value")
	if not eq:
		raise ValueError("update requires a filter")
	columns = _columns(table)
	_check(table, values)
	args: List[Any] = []
	assignments: List[str] = []
	for name, value in values.items():
		args.append(encode_value(columns[name], value))
		assignments.append(f"{_quote(name)} = ${len(args)}")
	sql = f"UPDATE {_quote(table)} SET {', '.join(assignments)}"
	sql += _where(table, args, eq, None, None)
	return sql, args


def build_delete(
	table: str,
	eq: Optional[Mapping[str, Any]] = None,
	in_: Optional[Mapping[str, Sequence[Any]]] = None,
) -> Tuple[str, List[Any]]:
	if not eq and not in_:
		raise ValueError("delete requires a filter")
	args: List[Any] = []
	sql = f"DELETE FROM {_quote(table)}" + _where(table, args, eq, None, in_)
	return sql, args


def _affected(status: str) -> int:
	# asyncpg returns command tags such as "UPDATE 3" / "DELETE 0"
	try:
		return int(status.rsplit(" ", 1)[-1])
	except (AttributeError, ValueError):
		return 0


class PostgresStore:
	"""RemoteStore over the shared asyncpg pool."""

	def __init__(self, pool: Optional[asyncpg.pool.Pool] = None) -> None:
		self._pool = pool

	async def _acquire_pool(self) -> asyncpg.pool.Pool:
		if self._pool is None:
			self._pool = await postgres.get_pool()
		return self._pool

	async def _run(self, table: str, op: str, sql: str, args: List[Any], mode: str) -> Any:
		try:
			pool = await self._acquire_pool()
			async with pool.acquire() as conn:
				if mode == "fetch":
					return await conn.fetch(sql, *args)
				if mode == "fetchrow":
					return await conn.fetchrow(sql, *args)
				return await conn.execute(sql, *args)
		except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
			obs_metrics.inc_remote_error(table, op)
			logger.warning("remote store %s on %s failed: %s", op, table, exc.__class__.__name__)
			raise RemoteUnavailable(f"{op} {table} failed", table=table, op=op) from exc

	async def select(
		self,
		table: str,
		*,
		eq: Optional[Mapping[str, Any]] = None,
		gte: Optional[Mapping[str, Any]] = None,
		in_: Optional[Mapping[str, Sequence[Any]]] = None,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Row]:
		sql, args = build_select(
			table, eq=eq, gte=gte, in_=in_, order_by=order_by, descending=descending, limit=limit
		)
		records = await self._run(table, "select", sql, args, "fetch")
		return [decode_row(record) for record in records]

	async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
		sql, args = build_insert(table, row)
		record = await self._run(table, "insert", sql, args, "fetchrow")
		return decode_row(record) if record is not None else dict(row)

	async def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> int:
		sql, args = build_update(table, values, eq)
		return _affected(await self._run(table, "update", sql, args, "execute"))

	async def delete(
		self,
		table: str,
		*,
		eq: Optional[Mapping[str, Any]] = None,
		in_: Optional[Mapping[str, Sequence[Any]]] = None,
	) -> int:
		sql, args = build_delete(table, eq, in_)
		return _affected(await self._run(table, "delete", sql, args, "execute"))
