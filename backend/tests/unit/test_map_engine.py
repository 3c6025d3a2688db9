import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from kairo.domain.map.config import TrackingConfigStore
from kairo.domain.map.features import (
	ActorMarker,
	ClusterMarker,
	PrivacyCircle,
	RadiusCircle,
	SelfMarker,
)
from kairo.domain.map.surface import InMemoryMapSurface, ScreenPoint
from kairo.domain.map.service import ProximityMapEngine
from kairo.domain.notices import MANUAL_LOCATION_SET, MANUAL_MODE_HINT, MEETUP_REQUEST_FAILED
from kairo.domain.proximity.exceptions import RosterFetchFailed
from kairo.domain.proximity.geo import GeoPoint, destination
from kairo.domain.proximity.models import ActorPresence
from kairo.domain.selection.models import SelectionPhase
from kairo.obs import metrics as obs_metrics

WYNYARD = GeoPoint(-33.8666, 151.2073)
DEVICE_FIX = GeoPoint(-33.87, 151.21)


def _payload(actor_id: str, point: GeoPoint, **extra) -> dict:
	return {"id": actor_id, "name": actor_id.title(), "lat": point.lat, "lng": point.lng, **extra}


def _kinds(surface: InMemoryMapSurface, kind: type) -> list:
	return [feature for feature in surface.features() if isinstance(feature, kind)]


async def _settle() -> None:
	await asyncio.sleep(0.02)


@pytest.fixture
def surface() -> InMemoryMapSurface:
	return InMemoryMapSurface(WYNYARD)


@pytest.fixture
def persistence() -> AsyncMock:
	return AsyncMock()


@pytest_asyncio.fixture
async def engine(surface, geolocation, persistence, meetups, notifier, clock):
	instance = ProximityMapEngine(
		ActorPresence(id="me", name="Me", location=WYNYARD),
		surface=surface,
		geolocation=geolocation,
		persistence=persistence,
		meetups=meetups,
		notifier=notifier,
		clock=clock,
		window_ms=5,
		map_id="map-test",
	)
	try:
		yield instance
	finally:
		await instance.close()


@pytest.mark.asyncio
async def test_start_locates_and_renders_self(engine, surface, geolocation):
	await engine.start()
	await _settle()

	assert engine.location.current == DEVICE_FIX
	assert geolocation.watches
	[animation] = surface.animations
	assert animation.center == DEVICE_FIX
	assert animation.zoom == 14
	assert animation.duration_ms == 1000

	[me] = _kinds(surface, SelfMarker)
	assert me.point == DEVICE_FIX
	[radius] = _kinds(surface, RadiusCircle)
	assert radius.center == DEVICE_FIX
	assert radius.radius_km == 5.0


@pytest.mark.asyncio
async def test_roster_update_renders_filtered_markers(engine, surface):
	await engine.start()
	engine.update_roster(
		[
			_payload("near", destination(DEVICE_FIX, 1.0, 90.0)),
			_payload("far", destination(DEVICE_FIX, 12.0, 90.0)),
			_payload("blocker", destination(DEVICE_FIX, 0.5, 0.0), blocked_by=["me"]),
			_payload("offline", destination(DEVICE_FIX, 0.5, 180.0), is_online=False),
			{"id": "", "lat": 1.0, "lng": 2.0},
		]
	)
	await _settle()

	assert [marker.actor_id for marker in _kinds(surface, ActorMarker)] == ["near"]
	summary = engine.nearby()
	assert [entry.actor.id for entry in summary.entries] == ["near"]
	assert summary.entries[0].distance_km == pytest.approx(1.0, rel=1e-3)
	assert [actor.id for actor in engine.roster] == ["near", "far", "blocker", "offline"]


@pytest.mark.asyncio
async def test_privacy_toggle_swaps_self_marker_for_circle(engine, surface, persistence, notifier):
	await engine.start()
	await _settle()

	engine.config_store.update(is_privacy_enabled=True)
	await _settle()

	assert _kinds(surface, SelfMarker) == []
	[circle] = _kinds(surface, PrivacyCircle)
	assert circle.center == DEVICE_FIX
	assert circle.radius_m == 3000.0
	assert engine.pulse.running
	assert notifier.titles()[-1] == "Privacy Mode Enabled"
	persistence.save_self_location.assert_awaited_with("me", DEVICE_FIX, hide_exact_location=True)

	engine.config_store.update(is_privacy_enabled=False)
	await _settle()
	assert _kinds(surface, PrivacyCircle) == []
	assert len(_kinds(surface, SelfMarker)) == 1
	assert not engine.pulse.running


@pytest.mark.asyncio
async def test_tracking_off_hides_self_and_radius_only(engine, surface, geolocation):
	await engine.start()
	engine.update_roster([_payload("near", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()

	engine.config_store.update(is_tracking=False)
	await _settle()

	assert _kinds(surface, SelfMarker) == []
	assert _kinds(surface, RadiusCircle) == []
	assert [marker.actor_id for marker in _kinds(surface, ActorMarker)] == ["near"]
	assert geolocation.watches == {}
	assert not engine.location.watching


@pytest.mark.asyncio
async def test_cluster_click_zooms_in(engine, surface):
	await engine.start()
	hub = destination(DEVICE_FIX, 2.0, 0.0)
	engine.update_roster(
		[_payload(f"u{i:02d}", destination(hub, 0.01 * (i + 1), i * 30.0)) for i in range(12)]
	)
	await _settle()

	[cluster] = _kinds(surface, ClusterMarker)
	assert cluster.count == 12

	view = await engine.handle_click(surface.project(cluster.point))

	assert view.phase is SelectionPhase.IDLE
	animation = surface.animations[-1]
	assert animation.zoom == 16
	assert animation.duration_ms == 500
	assert animation.center == cluster.point


@pytest.mark.asyncio
async def test_manual_mode_click_sets_location(engine, surface, notifier):
	await engine.start()
	await _settle()

	engine.config_store.update(is_manual_mode=True)
	assert notifier.notices[-1] == MANUAL_MODE_HINT
	assert not engine.location.watching

	chosen = surface.unproject(ScreenPoint(500, 300))
	await engine.handle_click(ScreenPoint(500, 300))
	await _settle()

	assert engine.location.current == chosen
	assert notifier.notices[-1] == MANUAL_LOCATION_SET
	[me] = _kinds(surface, SelfMarker)
	assert me.point == chosen


@pytest.mark.asyncio
async def test_confirm_meeting_animates_to_meeting_point(engine, surface, meetups, notifier, clock):
	await engine.start()
	engine.update_roster([_payload("alex", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()

	marker = engine.store.actor_marker("alex")
	view = await engine.handle_click(surface.project(marker.point))
	assert view.phase is SelectionPhase.SELECTED

	assert await engine.confirm_meeting(30) is True
	assert meetups.sent == [("me", "alex", 30, "Wynyard")]
	assert engine.selection_view().phase is SelectionPhase.MOVING
	assert engine.store.actor_marker("alex").moving

	clock.advance(3.0)
	await asyncio.sleep(0.05)

	assert engine.selection_view().phase is SelectionPhase.COMPLETED
	assert engine.store.actor_marker("alex").point == WYNYARD
	assert notifier.notices[-1].title == "Catch up confirmed!"
	assert "Alex" in notifier.notices[-1].description
	assert "30 minutes" in notifier.notices[-1].description

	# Completed actors are hits but not selectable.
	engine.selection.clear()
	view = await engine.handle_click(surface.project(WYNYARD))
	assert view.phase is SelectionPhase.IDLE


@pytest.mark.asyncio
async def test_failed_request_keeps_selection(engine, meetups, notifier):
	meetups.succeed = False
	await engine.start()
	engine.update_roster([_payload("alex", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()
	engine.select_actor("alex")

	assert await engine.confirm_meeting(15) is False

	assert notifier.notices[-1] == MEETUP_REQUEST_FAILED
	assert engine.selection_view().phase is SelectionPhase.SELECTED
	assert not engine.animator.active("alex")


@pytest.mark.asyncio
async def test_concurrent_confirmations_send_one_request(engine, meetups, notifier):
	await engine.start()
	engine.update_roster([_payload("alex", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()
	engine.select_actor("alex")

	send = meetups.send

	async def slow_send(*args):
		await asyncio.sleep(0.01)
		return await send(*args)

	meetups.send = slow_send

	results = await asyncio.gather(engine.confirm_meeting(30), engine.confirm_meeting(30))

	assert sorted(results) == [False, True]
	assert meetups.sent == [("me", "alex", 30, "Wynyard")]
	assert engine.selection_view().phase is SelectionPhase.MOVING
	assert MEETUP_REQUEST_FAILED not in notifier.notices


@pytest.mark.asyncio
async def test_pending_request_reflected_in_phase(engine, meetups):
	await engine.start()
	engine.update_roster([_payload("alex", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()
	meetups.pending.add("alex")

	assert engine.select_actor("alex").phase is SelectionPhase.PENDING_REQUEST


@pytest.mark.asyncio
async def test_roster_failure_keeps_last_roster(engine, surface):
	await engine.start()
	engine.update_roster([_payload("near", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()
	before = obs_metrics.ROSTER_FAILURES._value.get()

	engine.roster_failed(RosterFetchFailed("timeout"))
	await _settle()

	assert obs_metrics.ROSTER_FAILURES._value.get() == before + 1
	assert [actor.id for actor in engine.roster] == ["near"]
	assert len(_kinds(surface, ActorMarker)) == 1


@pytest.mark.asyncio
async def test_close_tears_everything_down(engine, surface, geolocation):
	await engine.start()
	engine.update_roster([_payload("near", destination(DEVICE_FIX, 1.0, 90.0))])
	await _settle()

	await engine.close()

	assert surface.features() == []
	assert geolocation.watches == {}
	assert geolocation.permission_listeners == []
	assert engine.scheduler.closed
	assert engine.config_store.listener_count == 0

	engine.update_roster([_payload("late", destination(DEVICE_FIX, 1.0, 0.0))])
	await _settle()
	assert surface.features() == []


@pytest.mark.asyncio
async def test_external_config_store_is_shared(surface, geolocation, notifier):
	store = TrackingConfigStore()
	engine = ProximityMapEngine(
		ActorPresence(id="me", location=WYNYARD),
		surface=surface,
		geolocation=geolocation,
		config_store=store,
		notifier=notifier,
		window_ms=5,
	)
	assert store.listener_count == 1
	store.update(radius_km=10.0)
	await engine.start(locate=False)
	await _settle()
	[radius] = _kinds(surface, RadiusCircle)
	assert radius.radius_km == 10.0
	await engine.close()
	assert store.listener_count == 0


@pytest.mark.asyncio
async def test_engine_owns_roster_poller(surface, geolocation, notifier):
	source = AsyncMock()
	source.fetch.return_value = [ActorPresence(id="near", location=destination(WYNYARD, 1.0, 90.0))]
	engine = ProximityMapEngine(
		ActorPresence(id="me", location=WYNYARD),
		surface=surface,
		geolocation=geolocation,
		notifier=notifier,
		roster_source=source,
		roster_poll_interval_s=0.01,
		window_ms=5,
	)
	await engine.start(locate=False)
	await _settle()

	assert engine.poller.running
	assert [actor.id for actor in engine.roster] == ["near"]
	center, radius_km = source.fetch.await_args.args
	assert center == WYNYARD
	assert radius_km == engine.config.radius_km
	assert len(_kinds(surface, ActorMarker)) == 1

	await engine.close()

	assert not engine.poller.running
	calls = source.fetch.await_count
	await _settle()
	assert source.fetch.await_count == calls
	assert surface.features() == []
