"""Domain models for location acquisition."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from kairo.domain.location.exceptions import LocationError
from kairo.domain.proximity.geo import GeoPoint


class PermissionState(str, Enum):
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"


class LocationSource(str, Enum):
    DEVICE = "device"
    DEFAULT = "default"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 10_000
    maximum_age_ms: int = 0


@dataclass(frozen=True, slots=True)
class Position:
    """A single fix as reported by the geolocation source."""

    lat: float
    lng: float
    accuracy_m: Optional[float] = None
    timestamp_ms: Optional[int] = None

    def to_point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


@dataclass(frozen=True, slots=True)
class LocationResult:
    """Outcome of a one-shot request."""

    point: Optional[GeoPoint] = None
    error: Optional[LocationError] = None
    source: Optional[LocationSource] = None
    suppressed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.suppressed and self.point is not None


@dataclass(frozen=True, slots=True)
class WatchHandle:
    """Opaque token for an active continuous subscription."""

    id: int
    platform_handle: Any = None


@dataclass(slots=True)
class LocationSession:
    """Session-scoped provider state; replaced wholesale on re-initialisation."""

    default_notice_shown: bool = False
    in_flight: bool = False
    last_request_at: Optional[float] = None
    last_persist_at: Optional[float] = None


PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[BaseException], None]
PermissionCallback = Callable[[PermissionState], None]


class GeolocationSource(Protocol):
    """Platform geolocation API as seen by the provider."""

    async def get_current_position(self, options: PositionOptions) -> Position:
        ...

    def watch_position(
        self,
        callback: PositionCallback,
        error_callback: ErrorCallback,
        options: PositionOptions,
    ) -> Any:
        ...

    def clear_watch(self, handle: Any) -> None:
        ...

    def permission_state(self) -> PermissionState:
        ...

    def subscribe_permission(self, callback: PermissionCallback) -> Callable[[], None]:
        ...


class LocationPersistence(Protocol):
    async def save_self_location(self, actor_id: str, point: GeoPoint, *, hide_exact_location: bool) -> None:
        ...


__all__ = [
    "PermissionState",
    "LocationSource",
    "PositionOptions",
    "Position",
    "LocationResult",
    "WatchHandle",
    "LocationSession",
    "GeolocationSource",
    "LocationPersistence",
]
