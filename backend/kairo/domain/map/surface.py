"""Map rendering surface contract and an in-memory Web-Mercator implementation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from kairo.domain.map.features import (
	MapFeature,
	PrivacyCircle,
	RadiusCircle,
	anchor_of,
	feature_id,
)
from kairo.domain.map.styles import MarkerStyle
from kairo.domain.proximity.geo import GeoPoint

TILE_SIZE = 256
_MAX_MERCATOR_LAT = 85.05112878
_EQUATOR_M_PER_PX = 156543.03392


@dataclass(frozen=True, slots=True)
class ScreenPoint:
	x: float
	y: float

	def distance_to(self, other: "ScreenPoint") -> float:
		return math.hypot(self.x - other.x, self.y - other.y)


class MapSurface(Protocol):
	"""Rendering surface the marker store draws on."""

	def project(self, point: GeoPoint) -> ScreenPoint:
		...

	def unproject(self, pixel: ScreenPoint) -> GeoPoint:
		...

	def add_features(self, features: Iterable[MapFeature]) -> None:
		...

	def remove_features(self, ids: Iterable[str]) -> None:
		...

	def update_feature(self, feature: MapFeature) -> None:
		...

	def set_style(self, feature_id: str, style: MarkerStyle) -> None:
		...

	def features(self) -> List[MapFeature]:
		...

	def hit_test(self, pixel: ScreenPoint, tolerance_px: float) -> List[MapFeature]:
		...

	def view_zoom(self) -> float:
		...

	def animate_view_to(self, point: GeoPoint, zoom: Optional[float], duration_ms: int) -> None:
		...


def _world_pixels(point: GeoPoint, zoom: float) -> Tuple[float, float]:
	scale = TILE_SIZE * (2 ** zoom)
	lat = max(-_MAX_MERCATOR_LAT, min(_MAX_MERCATOR_LAT, point.lat))
	x = (point.lng + 180.0) / 360.0 * scale
	siny = math.sin(math.radians(lat))
	y = (0.5 - math.log((1 + siny) / (1 - siny)) / (4 * math.pi)) * scale
	return x, y


def meters_per_pixel(lat: float, zoom: float) -> float:
	return _EQUATOR_M_PER_PX * math.cos(math.radians(lat)) / (2 ** zoom)


@dataclass(slots=True)
class ViewAnimation:
	center: GeoPoint
	zoom: Optional[float]
	duration_ms: int


class InMemoryMapSurface:
	"""Headless surface with a fixed viewport.

	View animations complete instantly; each one is recorded in ``animations``.
	"""

	def __init__(self, center: GeoPoint, zoom: float = 14.0, *, width: int = 800, height: int = 600) -> None:
		self.center = center
		self.zoom = zoom
		self.width = width
		self.height = height
		self._features: Dict[str, MapFeature] = {}
		self.styles: Dict[str, MarkerStyle] = {}
		self.animations: List[ViewAnimation] = []
		self.writes = 0

	def project(self, point: GeoPoint) -> ScreenPoint:
		px, py = _world_pixels(point, self.zoom)
		cx, cy = _world_pixels(self.center, self.zoom)
		return ScreenPoint(px - cx + self.width / 2, py - cy + self.height / 2)

	def unproject(self, pixel: ScreenPoint) -> GeoPoint:
		scale = TILE_SIZE * (2 ** self.zoom)
		cx, cy = _world_pixels(self.center, self.zoom)
		wx = pixel.x - self.width / 2 + cx
		wy = pixel.y - self.height / 2 + cy
		lng = wx / scale * 360.0 - 180.0
		n = math.pi - 2 * math.pi * wy / scale
		lat = math.degrees(math.atan(math.sinh(n)))
		lng = ((lng + 180.0) % 360.0) - 180.0
		return GeoPoint(lat, lng)

	def add_features(self, features: Iterable[MapFeature]) -> None:
		for feature in features:
			fid = feature_id(feature)
			if fid in self._features:
				raise ValueError(f"duplicate feature id: {fid}")
			self._features[fid] = feature
			self.writes += 1

	def remove_features(self, ids: Iterable[str]) -> None:
		for fid in ids:
			self._features.pop(fid, None)
			self.styles.pop(fid, None)
			self.writes += 1

	def update_feature(self, feature: MapFeature) -> None:
		self._features[feature_id(feature)] = feature
		self.writes += 1

	def set_style(self, feature_id: str, style: MarkerStyle) -> None:
		if feature_id in self._features:
			self.styles[feature_id] = style

	def features(self) -> List[MapFeature]:
		return list(self._features.values())

	def get(self, fid: str) -> Optional[MapFeature]:
		return self._features.get(fid)

	def hit_test(self, pixel: ScreenPoint, tolerance_px: float) -> List[MapFeature]:
		hits: List[Tuple[float, MapFeature]] = []
		for feature in self._features.values():
			anchor = self.project(anchor_of(feature))
			distance = anchor.distance_to(pixel)
			if isinstance(feature, (RadiusCircle, PrivacyCircle)):
				radius_m = feature.radius_km * 1000.0 if isinstance(feature, RadiusCircle) else feature.radius_m
				radius_px = radius_m / meters_per_pixel(feature.center.lat, self.zoom)
				if distance <= radius_px:
					hits.append((distance, feature))
				continue
			if distance <= tolerance_px:
				hits.append((distance, feature))
		hits.sort(key=lambda item: item[0])
		return [feature for _, feature in hits]

	def view_zoom(self) -> float:
		return self.zoom

	def animate_view_to(self, point: GeoPoint, zoom: Optional[float], duration_ms: int) -> None:
		self.animations.append(ViewAnimation(center=point, zoom=zoom, duration_ms=duration_ms))
		self.center = point
		if zoom is not None:
			self.zoom = zoom


__all__ = ["ScreenPoint", "MapSurface", "InMemoryMapSurface", "ViewAnimation", "meters_per_pixel"]
