"""Proximity filtering and clustering for the map pipeline."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from kairo.domain.proximity.clustering import (
	adaptive_cluster_radius,
	base_cluster_radius,
	cluster_actors,
	singletons,
)
from kairo.domain.proximity.geo import haversine_km
from kairo.domain.proximity.models import (
	ActorPresence,
	ClusterGroup,
	NearbyEntry,
	ProximitySummary,
)
from kairo.settings import settings

logger = logging.getLogger(__name__)


def is_blocked(actor: ActorPresence, self_actor: ActorPresence) -> bool:
	"""True when either side of the pair has blocked the other."""
	return self_actor.id in actor.blocked_by or actor.id in self_actor.blocked_by


def _with_distances(
	roster: Sequence[ActorPresence],
	self_actor: ActorPresence,
	radius_km: float,
	*,
	online_only: bool,
) -> list[tuple[ActorPresence, Optional[float]]]:
	kept: list[tuple[ActorPresence, Optional[float]]] = []
	seen: set[str] = set()
	for actor in roster:
		if actor.id == self_actor.id or actor.id in seen:
			continue
		# First record for an id wins.
		seen.add(actor.id)
		if actor.location is None:
			if logger.isEnabledFor(logging.DEBUG):
				logger.debug("proximity skip uid=%s reason=no_location", actor.id)
			continue
		if is_blocked(actor, self_actor):
			if logger.isEnabledFor(logging.DEBUG):
				logger.debug("proximity skip uid=%s reason=blocked", actor.id)
			continue
		if online_only and not actor.online:
			continue
		if self_actor.location is None:
			# Without a self fix every located actor counts as in range.
			kept.append((actor, None))
			continue
		distance_km = haversine_km(self_actor.location, actor.location)
		if distance_km > radius_km:
			continue
		kept.append((actor, distance_km))
	return kept


def filter_actors(
	roster: Sequence[ActorPresence],
	self_actor: ActorPresence,
	radius_km: float,
	*,
	online_only: Optional[bool] = None,
) -> list[ActorPresence]:
	"""Apply the fixed filter order: self, location, blocks, presence, distance."""
	if online_only is None:
		online_only = settings.proximity_online_only
	return [actor for actor, _ in _with_distances(roster, self_actor, radius_km, online_only=online_only)]


def filter_and_cluster(
	roster: Sequence[ActorPresence],
	self_actor: ActorPresence,
	radius_km: float,
	cluster_radius_km: float,
	*,
	min_cluster_actors: Optional[int] = None,
	adaptive: Optional[bool] = None,
	online_only: Optional[bool] = None,
) -> list[ClusterGroup]:
	"""Filter the roster and partition the survivors into clusters.

	Clustering only kicks in above `min_cluster_actors`; smaller rosters render
	one marker per actor. Either way every surviving actor lands in exactly one
	group.
	"""
	threshold = settings.cluster_min_actors if min_cluster_actors is None else min_cluster_actors
	use_adaptive = settings.cluster_adaptive_radius if adaptive is None else adaptive

	filtered = filter_actors(roster, self_actor, radius_km, online_only=online_only)
	if len(filtered) <= threshold:
		return singletons(filtered, cluster_radius_km)

	effective_radius = cluster_radius_km
	if use_adaptive:
		effective_radius = adaptive_cluster_radius(filtered, base_cluster_radius(len(filtered)))
	clusters = cluster_actors(filtered, effective_radius)
	logger.debug(
		"clustered actors=%s clusters=%s sizes=%s",
		len(filtered),
		len(clusters),
		[cluster.size for cluster in clusters],
	)
	return clusters


def summarize(
	roster: Sequence[ActorPresence],
	self_actor: ActorPresence,
	radius_km: float,
	*,
	online_only: Optional[bool] = None,
) -> ProximitySummary:
	"""Nearby list: filtered actors ordered by distance, closest first."""
	if online_only is None:
		online_only = settings.proximity_online_only
	kept = _with_distances(roster, self_actor, radius_km, online_only=online_only)
	kept.sort(key=lambda item: (item[1] is None, item[1] or 0.0, item[0].id))
	entries = tuple(NearbyEntry(actor=actor, distance_km=distance) for actor, distance in kept)
	business_count = sum(1 for entry in entries if entry.actor.is_business)
	return ProximitySummary(entries=entries, business_count=business_count, radius_km=radius_km)


__all__ = ["is_blocked", "filter_actors", "filter_and_cluster", "summarize"]
