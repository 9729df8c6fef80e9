"""In-memory doubles for the remote store, the device platform and its notifier."""

import asyncio
import uuid
from datetime import datetime, time
from typing import Any, Dict, List, Optional, Tuple

from campos.domain.errors import RemoteUnavailable
from campos.domain.events import AuthorizationStatus
from campos.domain.visits.timestamps import parse_day, parse_timestamp
from campos.infra.store import TABLES


class MemoryStore:
	"""In-process RemoteStore with the same filter semantics as PostgresStore."""

	def __init__(self) -> None:
		self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLES}
		self.failing: set = set()
		self.calls: List[Tuple[str, str]] = []

	def _guard(self, table: str, op: str) -> None:
		self.calls.append((table, op))
		if table not in TABLES:
			raise ValueError(f"unknown table: {table}")
		if (table, op) in self.failing or (table, "*") in self.failing:
			raise RemoteUnavailable(f"{op} {table} failed", table=table, op=op)

	@staticmethod
	def _comparable(table: str, name: str, value: Any) -> Any:
		kind = TABLES[table].get(name)
		if value is None:
			return None
		if kind == "timestamp":
			return parse_timestamp(value)
		if kind == "date":
			return parse_day(value)
		return value

	def _matches(self, table: str, row: Dict[str, Any], eq, gte, in_) -> bool:
		for name, value in (eq or {}).items():
			if self._comparable(table, name, row.get(name)) != self._comparable(table, name, value):
				return False
		for name, value in (gte or {}).items():
			current = self._comparable(table, name, row.get(name))
			if current is None or current < self._comparable(table, name, value):
				return False
		for name, values in (in_ or {}).items():
			if row.get(name) not in list(values):
				return False
		return True

	def seed(self, table: str, *rows: Dict[str, Any]) -> List[Dict[str, Any]]:
		stored = []
		for row in rows:
			full = {name: None for name in TABLES[table]}
			full.update(row)
			if full.get("id") is None:
				full["id"] = str(uuid.uuid4())
			self.tables[table].append(full)
			stored.append(dict(full))
		return stored

	async def select(
		self,
		table: str,
		*,
		eq=None,
		gte=None,
		in_=None,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		self._guard(table, "select")
		rows = [dict(row) for row in self.tables[table] if self._matches(table, row, eq, gte, in_)]
		if order_by is not None:
			rows.sort(key=lambda row: self._comparable(table, order_by, row.get(order_by)), reverse=descending)
		if limit is not None:
			rows = rows[:limit]
		return rows

	async def insert(self, table: str, row) -> Dict[str, Any]:
		self._guard(table, "insert")
		return self.seed(table, dict(row))[0]

	async def update(self, table: str, values, *, eq) -> int:
		self._guard(table, "update")
		count = 0
		for row in self.tables[table]:
			if self._matches(table, row, eq, None, None):
				row.update(values)
				count += 1
		return count

	async def delete(self, table: str, *, eq=None, in_=None) -> int:
		self._guard(table, "delete")
		keep = [row for row in self.tables[table] if not self._matches(table, row, eq, None, in_)]
		removed = len(self.tables[table]) - len(keep)
		self.tables[table] = keep
		return removed


class FakePlatform:
	"""Records the LocationPlatform requests a watcher makes."""

	def __init__(self, *, fail_location: bool = False, fail_monitoring: bool = False) -> None:
		self.calls: List[Tuple[str, Any]] = []
		self.fail_location = fail_location
		self.fail_monitoring = fail_monitoring

	def names(self) -> List[str]:
		return [name for name, _ in self.calls]

	async def request_location(self) -> None:
		self.calls.append(("request_location", None))
		if self.fail_location:
			raise RuntimeError("location services off")

	async def start_monitoring(self, region) -> None:
		if self.fail_monitoring:
			raise RuntimeError("monitoring unavailable")
		self.calls.append(("start_monitoring", region.id))

	async def stop_monitoring(self, region_id: str) -> None:
		self.calls.append(("stop_monitoring", region_id))

	async def stop_all_monitoring(self) -> None:
		self.calls.append(("stop_all_monitoring", None))

	async def request_state(self, region_id: str) -> None:
		self.calls.append(("request_state", region_id))


class FakeNotifier:
	def __init__(self, status: AuthorizationStatus = AuthorizationStatus.WHEN_IN_USE) -> None:
		self.status = status
		self.scheduled: List[Dict[str, Any]] = []
		self.canceled: List[str] = []

	async def schedule_local(
		self,
		identifier: str,
		title: str,
		body: str,
		*,
		after_seconds: Optional[float] = None,
		at: Optional[time] = None,
		repeats_daily: bool = False,
	) -> None:
		self.scheduled.append(
			{
				"id": identifier,
				"title": title,
				"body": body,
				"after_seconds": after_seconds,
				"at": at,
				"repeats_daily": repeats_daily,
			}
		)

	async def cancel_pending(self, identifier: str) -> None:
		self.canceled.append(identifier)

	async def authorization_status(self) -> AuthorizationStatus:
		return self.status


class FixedClock:
	def __init__(self, now: datetime) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now


PLACE_ROWS = [
	{"id": "p-cathedral", "name": "Cathedral", "region": "north", "locality": "Oldtown", "latitude": 40.0000, "longitude": -3.0000},
	{"id": "p-bridge", "name": "Bridge", "region": "north", "locality": "Oldtown", "latitude": 40.0270, "longitude": -3.0000},
	{"id": "p-lighthouse", "name": "Lighthouse", "region": "coast", "locality": "Port", "latitude": 40.0810, "longitude": -3.0000},
	{"id": "p-archive", "name": "archive", "region": "south", "locality": None, "latitude": None, "longitude": None},
]



async def wait_for(predicate, timeout: float = 1.0) -> None:
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		if loop.time() > deadline:
			raise AssertionError("condition not met in time")
		await asyncio.sleep(0.005)
