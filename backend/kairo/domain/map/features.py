"""Renderable map feature variants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from kairo.domain.proximity.geo import GeoPoint


@dataclass(frozen=True, slots=True)
class SelfMarker:
	actor_id: str
	point: GeoPoint


@dataclass(frozen=True, slots=True)
class ActorMarker:
	actor_id: str
	point: GeoPoint
	privacy: bool = False
	business: bool = False
	moving: bool = False
	completed: bool = False


@dataclass(frozen=True, slots=True)
class ClusterMarker:
	key: str
	point: GeoPoint
	member_ids: Tuple[str, ...]
	business: bool = False

	@property
	def count(self) -> int:
		return len(self.member_ids)


@dataclass(frozen=True, slots=True)
class RadiusCircle:
	center: GeoPoint
	radius_km: float


@dataclass(frozen=True, slots=True)
class PrivacyCircle:
	center: GeoPoint
	radius_m: float
	opacity: float


MapFeature = Union[SelfMarker, ActorMarker, ClusterMarker, RadiusCircle, PrivacyCircle]

SELF_ID = "self"
RADIUS_ID = "radius"
PRIVACY_ID = "privacy"


def feature_id(feature: MapFeature) -> str:
	if isinstance(feature, SelfMarker):
		return SELF_ID
	if isinstance(feature, ActorMarker):
		return f"actor:{feature.actor_id}"
	if isinstance(feature, ClusterMarker):
		return f"cluster:{feature.key}"
	if isinstance(feature, RadiusCircle):
		return RADIUS_ID
	if isinstance(feature, PrivacyCircle):
		return PRIVACY_ID
	raise TypeError(f"unknown map feature: {type(feature).__name__}")


def feature_kind(feature: MapFeature) -> str:
	if isinstance(feature, SelfMarker):
		return "self"
	if isinstance(feature, ActorMarker):
		return "actor"
	if isinstance(feature, ClusterMarker):
		return "cluster"
	if isinstance(feature, RadiusCircle):
		return "radius"
	if isinstance(feature, PrivacyCircle):
		return "privacy"
	raise TypeError(f"unknown map feature: {type(feature).__name__}")


def anchor_of(feature: MapFeature) -> GeoPoint:
	"""Point used for projection and hit-testing."""
	if isinstance(feature, (SelfMarker, ActorMarker, ClusterMarker)):
		return feature.point
	if isinstance(feature, (RadiusCircle, PrivacyCircle)):
		return feature.center
	raise TypeError(f"unknown map feature: {type(feature).__name__}")


def is_circle(feature: MapFeature) -> bool:
	return isinstance(feature, (RadiusCircle, PrivacyCircle))


__all__ = [
	"SelfMarker",
	"ActorMarker",
	"ClusterMarker",
	"RadiusCircle",
	"PrivacyCircle",
	"MapFeature",
	"SELF_ID",
	"RADIUS_ID",
	"PRIVACY_ID",
	"feature_id",
	"feature_kind",
	"anchor_of",
	"is_circle",
]
