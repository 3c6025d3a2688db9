import pytest

from kairo.domain.proximity.geo import GeoPoint, destination, haversine_km
from kairo.domain.proximity.models import ActorPresence
from kairo.domain.proximity.schemas import parse_roster
from kairo.domain.proximity.service import filter_actors, filter_and_cluster, is_blocked, summarize

ORIGIN = GeoPoint(-33.8666, 151.2073)


def _actor(actor_id: str, km: float = 0.5, bearing: float = 0.0, **kwargs) -> ActorPresence:
	return ActorPresence(id=actor_id, location=destination(ORIGIN, km, bearing), **kwargs)


def _me(**kwargs) -> ActorPresence:
	return ActorPresence(id="me", location=ORIGIN, **kwargs)


def test_radius_boundary_scenario():
	near = _actor("near", km=0.5)
	far = _actor("far", km=1.5)
	clusters = filter_and_cluster([near, far], _me(), radius_km=1.0, cluster_radius_km=0.5)
	ids = [member.id for cluster in clusters for member in cluster.members]
	assert ids == ["near"]


def test_filter_removes_self_missing_location_and_offline():
	roster = [
		ActorPresence(id="me", location=ORIGIN),
		ActorPresence(id="ghost", location=None),
		_actor("offline", online=False),
		_actor("ok"),
	]
	assert [a.id for a in filter_actors(roster, _me(), 5.0)] == ["ok"]
	assert [a.id for a in filter_actors(roster, _me(), 5.0, online_only=False)] == ["offline", "ok"]


def test_block_in_either_direction_excludes_pair():
	blocked_me = _actor("a", blocked_by=frozenset({"me"}))
	i_blocked = _actor("b")
	me = _me(blocked_by=frozenset({"b"}))
	assert is_blocked(blocked_me, me)
	assert is_blocked(i_blocked, me)
	assert filter_actors([blocked_me, i_blocked, _actor("c")], me, 5.0) == [_actor("c")]


def test_filtered_output_is_subset_within_radius():
	roster = [_actor(f"u{i}", km=0.3 * i, bearing=i * 37.0) for i in range(1, 15)]
	kept = filter_actors(roster, _me(), 2.0)
	assert set(kept) <= set(roster)
	assert all(haversine_km(ORIGIN, actor.location) <= 2.0 for actor in kept)
	assert len(kept) == 6


def test_unknown_self_location_keeps_everyone():
	roster = [_actor("a", km=1.0), _actor("b", km=400.0)]
	kept = filter_actors(roster, ActorPresence(id="me"), 1.0)
	assert [actor.id for actor in kept] == ["a", "b"]


def test_summarize_orders_by_distance_and_counts_businesses():
	roster = [
		_actor("far", km=3.0),
		_actor("shop", km=1.0, is_business=True),
		_actor("close", km=0.2),
	]
	summary = summarize(roster, _me(), 5.0)
	assert [entry.actor.id for entry in summary.entries] == ["close", "shop", "far"]
	assert summary.business_count == 1
	assert summary.count == 3
	assert summary.entries[0].distance_km == pytest.approx(0.2, rel=1e-6)


def test_parse_roster_drops_bad_ids_and_keeps_bad_locations():
	roster = parse_roster(
		[
			{"id": "a", "lat": -33.87, "lon": 151.2, "is_online": True},
			{"id": "", "lat": 0, "lon": 0},
			{"lat": 1, "lon": 1},
			{"id": "b", "lat": "garbage", "lon": 151.2},
			{"id": "c", "lat": 120, "lon": 10, "hide_exact_location": True, "blocked_by": "x, y"},
			{"id": "a", "lat": 0, "lon": 0},
		]
	)
	assert [actor.id for actor in roster] == ["a", "b", "c"]
	assert roster[0].location == GeoPoint(-33.87, 151.2)
	assert roster[1].location is None
	assert roster[2].location is None
	assert roster[2].privacy_enabled is True
	assert roster[2].blocked_by == frozenset({"x", "y"})


def test_duplicate_ids_land_in_exactly_one_group():
	first = _actor("a", km=0.2)
	again = _actor("a", km=0.4, bearing=90.0)
	clusters = filter_and_cluster([first, again, _actor("b", km=0.9, bearing=180.0)], _me(), radius_km=2.0, cluster_radius_km=0.05)
	ids = [member.id for cluster in clusters for member in cluster.members]
	assert sorted(ids) == ["a", "b"]
	assert filter_actors([first, again], _me(), 2.0) == [first]
