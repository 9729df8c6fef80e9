"""Error taxonomy shared by the visit detection and progress components."""

from __future__ import annotations

from typing import Optional


class CoreError(Exception):
    """Base for typed failures surfaced to callers.

    ``reason`` is a stable machine-readable code; ``status_code`` is the HTTP
    status the API layer renders it with.
    """

    reason = "core_error"
    status_code = 500

    def __init__(self, message: Optional[str] = None, *, reason: Optional[str] = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(message or self.reason)

    @property
    def message(self) -> str:
        return str(self)


class PermissionDenied(CoreError):
    """Location or notification authorization refused."""

    reason = "permission_denied"
    status_code = 403


class PositionUnavailable(CoreError):
    """No usable one-shot fix (timeout, platform failure, poor accuracy)."""

    reason = "position_unavailable"
    status_code = 422


class RemoteUnavailable(CoreError):
    """Network or store failure talking to the system of record."""

    reason = "remote_unavailable"
    status_code = 503

    def __init__(self, message: Optional[str] = None, *, table: Optional[str] = None, op: Optional[str] = None) -> None:
        super().__init__(message)
        self.table = table
        self.op = op


class DataAnomaly(CoreError):
    reason = "data_anomaly"
    status_code = 500

    def __init__(self, message: Optional[str] = None, *, kind: str = "unknown") -> None:
        super().__init__(message)
        self.kind = kind


class InvalidCoordinate(CoreError):
    reason = "invalid_coordinate"
    status_code = 422


class NotAuthenticated(CoreError):
    reason = "not_authenticated"
    status_code = 401


class NotNearby(CoreError):
    reason = "not_nearby"
    status_code = 409

    def __init__(self, distance_m: float, radius_m: float) -> None:
        super().__init__(f"{distance_m:.0f}m away, must be within {radius_m:.0f}m")
        self.distance_m = distance_m
        self.radius_m = radius_m


class RewardAlreadyClaimed(CoreError):
    reason = "reward_already_claimed"
    status_code = 409
