"""Central registry for Prometheus metrics used across the core."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"campos_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"campos_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"campos_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"campos_socketio_events_total",
	"Socket.IO events received per namespace",
	["namespace", "event"],
)

DWELL_TRANSITIONS = Counter(
	"campos_dwell_transitions_total",
	"Dwell state machine transitions",
	["transition"],
)

VISIT_OUTCOMES = Counter(
	"campos_visit_outcomes_total",
	"Visit ledger outcomes",
	["outcome"],
)

REGION_RESELECTIONS = Counter(
	"campos_region_reselections_total",
	"Monitored region set recomputations",
	["reason"],
)

REGION_RESELECTION_FAILURES = Counter(
	"campos_region_reselection_failures_total",
	"Monitored region set recomputations that failed",
)

MONITORED_REGIONS = Gauge(
	"campos_monitored_regions",
	"Regions registered by the most recent reselection",
)

POSITION_REQUESTS = Counter(
	"campos_position_requests_total",
	"One-shot position requests by result",
	["result"],
)

PROGRESS_RECOMPUTES = Counter(
	"campos_progress_recomputes_total",
	"Progress recomputations by result",
	["result"],
)

ACHIEVEMENTS_UNLOCKED = Counter(
	"campos_achievements_unlocked_total",
	"Achievements newly unlocked",
)

DAILY_REWARDS = Counter(
	"campos_daily_rewards_total",
	"Daily reward claim attempts by result",
	["result"],
)

DATA_ANOMALIES = Counter(
	"campos_data_anomalies_total",
	"Duplicate or malformed rows detected and repaired",
	["kind"],
)

REMOTE_ERRORS = Counter(
	"campos_remote_errors_total",
	"Remote store failures",
	["table", "op"],
)

CATALOG_LOADS = Counter(
	"campos_catalog_loads_total",
	"Place catalog loads by source",
	["source"],
)

NOTIFICATIONS = Counter(
	"campos_notifications_total",
	"Local alerts scheduled or canceled",
	["kind", "action"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_dwell(transition: str) -> None:
	DWELL_TRANSITIONS.labels(transition=transition).inc()


def inc_visit_outcome(outcome: str) -> None:
	VISIT_OUTCOMES.labels(outcome=outcome).inc()


def region_reselected(reason: str, count: int) -> None:
	REGION_RESELECTIONS.labels(reason=reason).inc()
	MONITORED_REGIONS.set(float(count))


def region_reselect_failed() -> None:
	REGION_RESELECTION_FAILURES.inc()


def inc_position_request(result: str) -> None:
	POSITION_REQUESTS.labels(result=result).inc()


def inc_progress_recompute(result: str) -> None:
	PROGRESS_RECOMPUTES.labels(result=result).inc()


def inc_achievements_unlocked(count: int = 1) -> None:
	if count > 0:
		ACHIEVEMENTS_UNLOCKED.inc(count)


def inc_daily_reward(result: str) -> None:
	DAILY_REWARDS.labels(result=result).inc()


def inc_data_anomaly(kind: str) -> None:
	DATA_ANOMALIES.labels(kind=kind).inc()


def inc_remote_error(table: str, op: str) -> None:
	REMOTE_ERRORS.labels(table=table, op=op).inc()


def inc_catalog_load(source: str) -> None:
	CATALOG_LOADS.labels(source=source).inc()


def inc_notification(kind: str, action: str) -> None:
	NOTIFICATIONS.labels(kind=kind, action=action).inc()
