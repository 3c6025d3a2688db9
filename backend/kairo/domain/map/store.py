"""Authoritative mapping from actor/cluster identity to rendered features."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from kairo.domain.map.features import (
	PRIVACY_ID,
	RADIUS_ID,
	ActorMarker,
	ClusterMarker,
	MapFeature,
	PrivacyCircle,
	RadiusCircle,
	SelfMarker,
	feature_id,
	feature_kind,
)
from kairo.domain.map.styles import StyleContext, style_for
from kairo.domain.map.surface import MapSurface
from kairo.domain.privacy.service import PrivacyObfuscator
from kairo.domain.proximity.geo import GeoPoint
from kairo.domain.proximity.models import ClusterGroup
from kairo.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class MarkerStore:
	"""The only component that writes to the map surface.

	Markers (self, actors, clusters) are replaced wholesale on every ``sync``.
	The radius and privacy circles are singletons updated in place.
	"""

	def __init__(self, surface: MapSurface, *, obfuscator: Optional[PrivacyObfuscator] = None) -> None:
		self._surface = surface
		self._obfuscator = obfuscator or PrivacyObfuscator()
		self._markers: Dict[str, MapFeature] = {}
		self._radius: Optional[RadiusCircle] = None
		self._privacy: Optional[PrivacyCircle] = None
		self._pins: Dict[str, GeoPoint] = {}
		self._context = StyleContext()

	@property
	def context(self) -> StyleContext:
		return self._context

	@property
	def radius_circle(self) -> Optional[RadiusCircle]:
		return self._radius

	@property
	def privacy_circle(self) -> Optional[PrivacyCircle]:
		return self._privacy

	def markers(self) -> Dict[str, MapFeature]:
		return dict(self._markers)

	def actor_marker(self, actor_id: str) -> Optional[ActorMarker]:
		marker = self._markers.get(f"actor:{actor_id}")
		return marker if isinstance(marker, ActorMarker) else None

	def self_marker(self) -> Optional[SelfMarker]:
		for marker in self._markers.values():
			if isinstance(marker, SelfMarker):
				return marker
		return None

	# ------------------------------------------------------------------
	# markers

	def build_markers(self, clusters: Sequence[ClusterGroup]) -> List[MapFeature]:
		built: List[MapFeature] = []
		for cluster in clusters:
			if cluster.is_single:
				actor = cluster.members[0]
				point = self._pins.get(actor.id) or self._obfuscator.marker_point_for(actor)
				if point is None:
					continue
				built.append(
					ActorMarker(
						actor_id=actor.id,
						point=point,
						privacy=actor.privacy_enabled,
						business=actor.is_business,
						moving=actor.id in self._context.moving,
						completed=actor.id in self._context.completed,
					)
				)
				continue
			built.append(
				ClusterMarker(
					key=cluster.members[0].id,
					point=cluster.center,
					member_ids=cluster.member_ids,
					business=all(member.is_business for member in cluster.members),
				)
			)
		return built

	def sync(
		self,
		clusters: Sequence[ClusterGroup],
		self_marker: Optional[SelfMarker],
		radius_circle: Optional[RadiusCircle] = None,
		privacy_circle: Optional[PrivacyCircle] = None,
		*,
		context: Optional[StyleContext] = None,
	) -> None:
		if context is not None:
			self._context = context
		present = {member.id for cluster in clusters for member in cluster.members}
		for actor_id in [pinned for pinned in self._pins if pinned not in present]:
			self.release_actor(actor_id)
		fresh = self.build_markers(clusters)
		# The self marker and the privacy circle never coexist.
		if self_marker is not None and privacy_circle is None:
			fresh.append(self_marker)

		next_markers: Dict[str, MapFeature] = {}
		for feature in fresh:
			fid = feature_id(feature)
			if fid in next_markers:
				logger.warning("marker sync dropped duplicate feature id=%s", fid)
				continue
			next_markers[fid] = feature

		self._surface.remove_features(list(self._markers))
		self._surface.add_features(next_markers.values())
		for fid, feature in next_markers.items():
			self._surface.set_style(fid, style_for(feature, self._context))
		self._markers = next_markers

		self.update_radius_circle(radius_circle)
		self.update_privacy_circle(privacy_circle)
		obs_metrics.set_cluster_count(len(clusters))
		self._report_counts()

	def move_actor(self, actor_id: str, point: GeoPoint) -> None:
		self._pins[actor_id] = point
		fid = f"actor:{actor_id}"
		marker = self._markers.get(fid)
		if not isinstance(marker, ActorMarker):
			return
		moved = replace(marker, point=point)
		self._markers[fid] = moved
		self._surface.update_feature(moved)

	def release_actor(self, actor_id: str) -> None:
		self._pins.pop(actor_id, None)

	def restyle(self, context: StyleContext) -> None:
		self._context = context
		for fid, feature in list(self._markers.items()):
			if isinstance(feature, ActorMarker):
				flagged = replace(
					feature,
					moving=feature.actor_id in context.moving,
					completed=feature.actor_id in context.completed,
				)
				if flagged != feature:
					self._markers[fid] = flagged
					self._surface.update_feature(flagged)
					feature = flagged
			self._surface.set_style(fid, style_for(feature, context))

	# ------------------------------------------------------------------
	# circles

	def update_radius_circle(self, circle: Optional[RadiusCircle]) -> None:
		if circle == self._radius:
			return
		if circle is None:
			self._surface.remove_features([RADIUS_ID])
		elif self._radius is None:
			self._surface.add_features([circle])
		else:
			self._surface.update_feature(circle)
		if circle is not None:
			self._surface.set_style(RADIUS_ID, style_for(circle, self._context))
		self._radius = circle

	def update_privacy_circle(self, circle: Optional[PrivacyCircle]) -> None:
		if circle is not None and self._privacy is not None:
			# Keep the animated opacity; only geometry comes from the recompute.
			circle = replace(circle, opacity=self._privacy.opacity)
		if circle == self._privacy:
			return
		if circle is None:
			self._surface.remove_features([PRIVACY_ID])
		elif self._privacy is None:
			self._surface.add_features([circle])
		else:
			self._surface.update_feature(circle)
		if circle is not None:
			self._surface.set_style(PRIVACY_ID, style_for(circle, self._context))
		self._privacy = circle
		if circle is not None:
			self._drop_self_marker()

	def set_privacy_opacity(self, opacity: float) -> None:
		if self._privacy is None:
			return
		updated = replace(self._privacy, opacity=opacity)
		self._privacy = updated
		self._surface.update_feature(updated)
		self._surface.set_style(PRIVACY_ID, style_for(updated, self._context))

	# ------------------------------------------------------------------

	def clear(self) -> None:
		ids = list(self._markers)
		if self._radius is not None:
			ids.append(RADIUS_ID)
		if self._privacy is not None:
			ids.append(PRIVACY_ID)
		self._surface.remove_features(ids)
		self._markers = {}
		self._radius = None
		self._privacy = None
		self._pins.clear()
		self._report_counts()

	def _drop_self_marker(self) -> None:
		for fid, feature in list(self._markers.items()):
			if isinstance(feature, SelfMarker):
				self._surface.remove_features([fid])
				del self._markers[fid]

	def _report_counts(self) -> None:
		counts = {"self": 0, "actor": 0, "cluster": 0, "radius": 0, "privacy": 0}
		for feature in self._markers.values():
			counts[feature_kind(feature)] += 1
		counts["radius"] = 1 if self._radius is not None else 0
		counts["privacy"] = 1 if self._privacy is not None else 0
		obs_metrics.set_feature_counts(counts)


__all__ = ["MarkerStore"]
