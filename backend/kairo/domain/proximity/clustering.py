"""Greedy spatial clustering of the filtered roster."""

from __future__ import annotations

import logging
from typing import Sequence

from kairo.domain.proximity.geo import centroid, haversine_km
from kairo.domain.proximity.models import ActorPresence, ClusterGroup

logger = logging.getLogger(__name__)

DENSE_THRESHOLD = 50.0
MODERATE_THRESHOLD = 20.0
SPARSE_THRESHOLD = 5.0


def base_cluster_radius(actor_count: int) -> float:
	"""Base radius in km by roster size; bigger rosters get tighter clusters."""
	if actor_count > 20:
		return 0.3
	if actor_count > 10:
		return 0.5
	return 0.8


def adaptive_cluster_radius(actors: Sequence[ActorPresence], base_radius_km: float) -> float:
	"""Scale the cluster radius by how densely the actors are packed.

	Density is actors per degree of the larger of the lat/lng spread. Dense
	rosters shrink the radius, sparse ones widen it (capped at 2 km).
	"""
	located = [actor.location for actor in actors if actor.location is not None]
	if len(located) < 10:
		return base_radius_km

	lat_range = max(p.lat for p in located) - min(p.lat for p in located)
	lng_range = max(p.lng for p in located) - min(p.lng for p in located)
	spread = max(lat_range, lng_range, 0.01)
	density = len(located) / spread

	if density > DENSE_THRESHOLD:
		radius = max(0.2, base_radius_km * 0.6)
	elif density > MODERATE_THRESHOLD:
		radius = base_radius_km * 0.8
	elif density < SPARSE_THRESHOLD:
		radius = min(2.0, base_radius_km * 1.5)
	else:
		radius = base_radius_km
	logger.debug("adaptive cluster radius actors=%s density=%.2f radius_km=%.2f", len(located), density, radius)
	return radius


def cluster_actors(actors: Sequence[ActorPresence], cluster_radius_km: float) -> list[ClusterGroup]:
	"""Single-pass greedy clustering in input order.

	Each unprocessed actor seeds a cluster and absorbs every other unprocessed
	actor within `cluster_radius_km` of the seed. Distances are always measured
	from the seed, never from the running centroid, so the output only depends
	on input order. The reported centre is the members' centroid.
	"""
	located = [actor for actor in actors if actor.location is not None]
	processed: set[str] = set()
	clusters: list[ClusterGroup] = []

	for seed in located:
		if seed.id in processed:
			continue
		processed.add(seed.id)
		members = [seed]
		for other in located:
			if other.id in processed:
				continue
			if haversine_km(seed.location, other.location) <= cluster_radius_km:  # type: ignore[arg-type]
				members.append(other)
				processed.add(other.id)
		center = seed.location if len(members) == 1 else centroid([m.location for m in members])  # type: ignore[misc]
		clusters.append(ClusterGroup(center=center, members=tuple(members), radius_km=cluster_radius_km))  # type: ignore[arg-type]

	return clusters


def singletons(actors: Sequence[ActorPresence], radius_km: float) -> list[ClusterGroup]:
	"""One cluster per actor, used below the clustering threshold."""
	return [
		ClusterGroup(center=actor.location, members=(actor,), radius_km=radius_km)  # type: ignore[arg-type]
		for actor in actors
		if actor.location is not None
	]


__all__ = ["base_cluster_radius", "adaptive_cluster_radius", "cluster_actors", "singletons"]
