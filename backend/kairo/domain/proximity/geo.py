"""Great-circle helpers shared by the proximity pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True, slots=True)
class GeoPoint:
	"""A WGS84 coordinate in degrees."""

	lat: float
	lng: float

	def __post_init__(self) -> None:
		if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
			raise ValueError("coordinates must be finite")
		if not -90.0 <= self.lat <= 90.0:
			raise ValueError(f"latitude out of range: {self.lat}")
		if not -180.0 <= self.lng <= 180.0:
			raise ValueError(f"longitude out of range: {self.lng}")

	@classmethod
	def parse(cls, lat: object, lng: object) -> "GeoPoint | None":
		"""Build a point from loosely typed input, returning None when unusable."""
		try:
			return cls(float(lat), float(lng))  # type: ignore[arg-type]
		except (TypeError, ValueError):
			return None


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
	"""Return the great-circle distance between two points in kilometres."""

	phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
	dphi = math.radians(b.lat - a.lat)
	dlambda = math.radians(b.lng - a.lng)
	h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	# Clamp against floating point drift for antipodal points
	h = min(1.0, max(0.0, h))
	return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def destination(origin: GeoPoint, distance_km: float, bearing_deg: float) -> GeoPoint:
	"""Point reached by travelling `distance_km` from `origin` along `bearing_deg`."""

	bearing = math.radians(bearing_deg)
	lat1 = math.radians(origin.lat)
	lon1 = math.radians(origin.lng)
	angular = distance_km / EARTH_RADIUS_KM

	lat2 = math.asin(
		math.sin(lat1) * math.cos(angular) + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
	)
	lon2 = lon1 + math.atan2(
		math.sin(bearing) * math.sin(angular) * math.cos(lat1),
		math.cos(angular) - math.sin(lat1) * math.sin(lat2),
	)
	lng = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
	return GeoPoint(math.degrees(lat2), lng)


def centroid(points: list[GeoPoint]) -> GeoPoint:
	"""Arithmetic mean of the points; adequate at cluster scale."""
	if not points:
		raise ValueError("centroid of an empty point set")
	lat = sum(p.lat for p in points) / len(points)
	lng = sum(p.lng for p in points) / len(points)
	return GeoPoint(lat, lng)


def lerp(start: GeoPoint, end: GeoPoint, progress: float) -> tuple[float, float]:
	"""Linear interpolation returning raw (lat, lng) so callers can add offsets."""
	t = min(1.0, max(0.0, progress))
	return (
		start.lat + (end.lat - start.lat) * t,
		start.lng + (end.lng - start.lng) * t,
	)


__all__ = ["EARTH_RADIUS_KM", "GeoPoint", "haversine_km", "destination", "centroid", "lerp"]
