"""Location obfuscation for actors with privacy mode enabled."""

from __future__ import annotations

import zlib
from typing import Optional

from kairo.domain.map.features import PrivacyCircle
from kairo.domain.proximity.geo import GeoPoint, destination
from kairo.domain.proximity.models import ActorPresence
from kairo.settings import settings

DECOY_MIN_OFFSET_M = 30.0
DECOY_MAX_OFFSET_M = 50.0


def _seed(actor_id: str) -> float:
	"""Stable value in [0, 1] derived from the actor id."""
	return (zlib.crc32(actor_id.encode("utf-8")) & 0xFFFFFFFF) / 0xFFFFFFFF


class PrivacyObfuscator:
	"""Decides which geometry represents an actor on the map.

	Privacy-enabled actors never get a precise marker. The local actor is drawn
	as a fixed-radius circle around the true centre; other actors get a small
	decorative marker offset from their real position.
	"""

	def __init__(self, *, circle_radius_m: Optional[float] = None) -> None:
		self.circle_radius_m = settings.privacy_circle_radius_m if circle_radius_m is None else circle_radius_m

	def display_location_for(self, actor: ActorPresence, is_self: bool) -> Optional[GeoPoint]:
		return actor.location

	def decoy_point_for(self, actor: ActorPresence) -> Optional[GeoPoint]:
		if actor.location is None:
			return None
		seed = _seed(actor.id)
		offset_m = DECOY_MIN_OFFSET_M + seed * (DECOY_MAX_OFFSET_M - DECOY_MIN_OFFSET_M)
		bearing = (seed * 7919.0) % 360.0
		return destination(actor.location, offset_m / 1000.0, bearing)

	def marker_point_for(self, actor: ActorPresence) -> Optional[GeoPoint]:
		"""Where another actor's marker is drawn."""
		if actor.privacy_enabled:
			return self.decoy_point_for(actor)
		return self.display_location_for(actor, is_self=False)

	def privacy_circle_for(
		self,
		self_actor: ActorPresence,
		privacy_enabled: bool,
		*,
		opacity: Optional[float] = None,
	) -> Optional[PrivacyCircle]:
		if not privacy_enabled:
			return None
		center = self.display_location_for(self_actor, is_self=True)
		if center is None:
			return None
		return PrivacyCircle(
			center=center,
			radius_m=self.circle_radius_m,
			opacity=settings.privacy_pulse_min_opacity if opacity is None else opacity,
		)


__all__ = ["PrivacyObfuscator", "DECOY_MIN_OFFSET_M", "DECOY_MAX_OFFSET_M"]
