import asyncio

import pytest

from kairo.domain.privacy.pulse import PrivacyPulse, pulse_opacity
from kairo.domain.privacy.service import PrivacyObfuscator
from kairo.domain.proximity.geo import GeoPoint, haversine_km
from kairo.domain.proximity.models import ActorPresence

ORIGIN = GeoPoint(-33.8666, 151.2073)


def test_display_location_is_true_centre():
	actor = ActorPresence(id="a", location=ORIGIN, privacy_enabled=True)
	assert PrivacyObfuscator().display_location_for(actor, is_self=True) == ORIGIN


def test_decoy_point_is_stable_and_within_band():
	obfuscator = PrivacyObfuscator()
	for actor_id in ("alice", "bob", "0f8c", "z"):
		actor = ActorPresence(id=actor_id, location=ORIGIN, privacy_enabled=True)
		first = obfuscator.decoy_point_for(actor)
		assert first == obfuscator.decoy_point_for(actor)
		assert 0.030 - 1e-9 <= haversine_km(first, ORIGIN) <= 0.050 + 1e-9


def test_marker_point_uses_exact_location_without_privacy():
	obfuscator = PrivacyObfuscator()
	open_actor = ActorPresence(id="a", location=ORIGIN)
	hidden_actor = ActorPresence(id="a", location=ORIGIN, privacy_enabled=True)
	assert obfuscator.marker_point_for(open_actor) == ORIGIN
	assert obfuscator.marker_point_for(hidden_actor) != ORIGIN
	assert obfuscator.decoy_point_for(ActorPresence(id="x")) is None


def test_privacy_circle_only_when_enabled_and_located():
	obfuscator = PrivacyObfuscator(circle_radius_m=1500.0)
	me = ActorPresence(id="me", location=ORIGIN)
	assert obfuscator.privacy_circle_for(me, False) is None
	assert obfuscator.privacy_circle_for(ActorPresence(id="me"), True) is None
	circle = obfuscator.privacy_circle_for(me, True)
	assert circle.center == ORIGIN
	assert circle.radius_m == 1500.0
	assert circle.opacity == pytest.approx(0.2)


@pytest.mark.parametrize(
	"elapsed_ms,expected",
	[(0, 0.2), (1500, 0.3), (3000, 0.4), (4500, 0.3), (6000, 0.2), (7500, 0.3)],
)
def test_pulse_opacity_triangle_wave(elapsed_ms, expected):
	assert pulse_opacity(elapsed_ms, 0.2, 0.4, 3000) == pytest.approx(expected)


@pytest.mark.asyncio
async def test_pulse_emits_frames_and_stops_cleanly():
	frames: list[float] = []
	pulse = PrivacyPulse(frames.append, frame_ms=1)
	pulse.restart()
	await asyncio.sleep(0.02)
	assert pulse.running
	assert frames
	assert all(0.2 <= value <= 0.4 for value in frames)

	await pulse.stop()
	count = len(frames)
	await asyncio.sleep(0.01)
	assert not pulse.running
	assert len(frames) == count


@pytest.mark.asyncio
async def test_pulse_restart_replaces_running_task(clock):
	frames: list[float] = []
	pulse = PrivacyPulse(frames.append, frame_ms=1, clock=clock)
	pulse.restart()
	await asyncio.sleep(0)
	clock.advance(1.5)
	await asyncio.sleep(0.005)
	assert frames[-1] == pytest.approx(0.3)

	pulse.restart()
	await asyncio.sleep(0.005)
	assert frames[-1] == pytest.approx(0.2)
	await pulse.stop()
