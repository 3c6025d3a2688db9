import pytest

from kairo.domain.proximity.clustering import (
	adaptive_cluster_radius,
	base_cluster_radius,
	cluster_actors,
)
from kairo.domain.proximity.geo import GeoPoint, destination, haversine_km
from kairo.domain.proximity.models import ActorPresence
from kairo.domain.proximity.service import filter_and_cluster
from kairo.settings import settings

ORIGIN = GeoPoint(-33.8666, 151.2073)
ME = ActorPresence(id="me", location=ORIGIN)


def _ring(prefix: str, count: int, center: GeoPoint, spread_km: float) -> list[ActorPresence]:
	return [
		ActorPresence(id=f"{prefix}{i}", location=destination(center, spread_km, i * (360.0 / count)))
		for i in range(count)
	]


def test_twelve_actors_within_radius_form_one_cluster():
	actors = _ring("u", 12, destination(ORIGIN, 1.0, 45.0), 0.2)
	clusters = filter_and_cluster(actors, ME, radius_km=5.0, cluster_radius_km=0.5)
	assert len(clusters) == 1
	assert clusters[0].size == 12
	assert clusters[0].center != actors[0].location


def test_threshold_keeps_small_rosters_unclustered():
	actors = _ring("u", settings.cluster_min_actors, ORIGIN, 0.05)
	clusters = filter_and_cluster(actors, ME, radius_km=5.0, cluster_radius_km=0.5)
	assert len(clusters) == settings.cluster_min_actors
	assert all(cluster.is_single for cluster in clusters)
	assert [c.center for c in clusters] == [a.location for a in actors]


def test_clusters_are_disjoint_and_exhaustive():
	actors = _ring("a", 8, destination(ORIGIN, 1.0, 0.0), 0.1) + _ring("b", 8, destination(ORIGIN, 3.0, 180.0), 0.1)
	clusters = filter_and_cluster(actors, ME, radius_km=10.0, cluster_radius_km=0.5)
	ids = [member.id for cluster in clusters for member in cluster.members]
	assert sorted(ids) == sorted(actor.id for actor in actors)
	assert len(ids) == len(set(ids))
	assert len(clusters) == 2


def test_absorption_is_measured_from_seed():
	# b is within range of the seed, c only of b; c must start its own cluster
	a = ActorPresence(id="a", location=ORIGIN)
	b = ActorPresence(id="b", location=destination(ORIGIN, 0.4, 90.0))
	c = ActorPresence(id="c", location=destination(ORIGIN, 0.8, 90.0))
	clusters = cluster_actors([a, b, c], 0.5)
	assert [cluster.member_ids for cluster in clusters] == [("a", "b"), ("c",)]
	assert haversine_km(clusters[0].center, ORIGIN) == pytest.approx(haversine_km(clusters[0].center, b.location), rel=1e-3)


def test_base_radius_shrinks_with_roster_size():
	assert base_cluster_radius(5) == 0.8
	assert base_cluster_radius(15) == 0.5
	assert base_cluster_radius(40) == 0.3


def test_adaptive_radius_tightens_for_dense_rosters():
	dense = _ring("d", 30, ORIGIN, 0.05)
	sparse = [ActorPresence(id=f"s{i}", location=GeoPoint(-33.0 - i * 0.3, 151.0)) for i in range(10)]
	assert adaptive_cluster_radius(dense, 0.5) < 0.5
	assert adaptive_cluster_radius(sparse, 0.5) == 0.75
	assert adaptive_cluster_radius(dense[:5], 0.5) == 0.5


def test_adaptive_mode_starts_from_size_based_radius():
	dense = _ring("d", 30, destination(ORIGIN, 1.0, 0.0), 0.05)
	clusters = filter_and_cluster(dense, ME, radius_km=5.0, cluster_radius_km=0.5, adaptive=True)
	assert [cluster.radius_km for cluster in clusters] == [pytest.approx(0.2)]
	assert clusters[0].size == 30
