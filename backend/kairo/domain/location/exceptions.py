"""Geolocation error taxonomy."""

from __future__ import annotations

import asyncio


class LocationError(Exception):
    """Base class for geolocation failures."""

    reason: str = "unknown"
    message: str = "Unable to retrieve your location."

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class PermissionDenied(LocationError):
    reason = "permission_denied"
    message = (
        "Location permission denied. Please enable location services for this app in your settings."
    )


class PositionUnavailable(LocationError):
    reason = "position_unavailable"
    message = "Your location information is unavailable. Please check your device settings."


class Timeout(LocationError):
    reason = "timeout"
    message = "Location request timed out. Please try again."


class Unsupported(LocationError):
    reason = "unsupported"
    message = "Geolocation is not supported on this device."


class GeolocationPositionError(Exception):
    """Raised by geolocation sources with the platform's numeric error code."""

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(message or f"geolocation error {code}")
        self.code = code


def classify(error: BaseException) -> LocationError:
    """Map a platform error onto the taxonomy; unknown failures count as unavailable."""
    if isinstance(error, LocationError):
        return error
    if isinstance(error, GeolocationPositionError):
        if error.code == GeolocationPositionError.PERMISSION_DENIED:
            return PermissionDenied()
        if error.code == GeolocationPositionError.TIMEOUT:
            return Timeout()
        return PositionUnavailable()
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return Timeout()
    return PositionUnavailable()


__all__ = [
    "LocationError",
    "PermissionDenied",
    "PositionUnavailable",
    "Timeout",
    "Unsupported",
    "GeolocationPositionError",
    "classify",
]
