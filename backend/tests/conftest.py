import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional, Set

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from kairo.domain.location.exceptions import GeolocationPositionError
from kairo.domain.location.models import PermissionState, Position, PositionOptions
from kairo.domain.notices import Notice
from kairo.settings import settings


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from kairo.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the knobs tests rely on regardless of the local .env."""
	original_env = settings.environment
	original_adaptive = settings.cluster_adaptive_radius
	original_online_only = settings.proximity_online_only
	settings.environment = "dev"
	settings.cluster_adaptive_radius = False
	settings.proximity_online_only = True
	try:
		yield
	finally:
		settings.environment = original_env
		settings.cluster_adaptive_radius = original_adaptive
		settings.proximity_online_only = original_online_only


class FakeClock:
	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


class RecordingNotifier:
	def __init__(self) -> None:
		self.notices: List[Notice] = []

	def notify(self, notice: Notice) -> None:
		self.notices.append(notice)

	def titles(self) -> List[str]:
		return [notice.title for notice in self.notices]


@pytest.fixture
def notifier() -> RecordingNotifier:
	return RecordingNotifier()


class FakeGeolocation:
	"""Scriptable geolocation source.

	`position` or `error` drives one-shot requests; watch callbacks are kept so
	tests can push fixes with `emit`.
	"""

	def __init__(
		self,
		position: Optional[Position] = None,
		*,
		error: Optional[BaseException] = None,
		permission: PermissionState = PermissionState.PROMPT,
		delay: float = 0.0,
	) -> None:
		self.position = position
		self.error = error
		self.permission = permission
		self.delay = delay
		self.requests: List[PositionOptions] = []
		self.watches: dict[int, tuple[Callable[[Position], None], Callable[[BaseException], None]]] = {}
		self.cleared: List[int] = []
		self.permission_listeners: List[Callable[[PermissionState], None]] = []
		self._next_watch = 0

	async def get_current_position(self, options: PositionOptions) -> Position:
		self.requests.append(options)
		if self.delay:
			await asyncio.sleep(self.delay)
		if self.error is not None:
			raise self.error
		if self.position is None:
			raise GeolocationPositionError(GeolocationPositionError.POSITION_UNAVAILABLE)
		return self.position

	def watch_position(self, callback, error_callback, options) -> int:
		self._next_watch += 1
		self.watches[self._next_watch] = (callback, error_callback)
		return self._next_watch

	def clear_watch(self, handle: Any) -> None:
		self.watches.pop(handle, None)
		self.cleared.append(handle)

	def permission_state(self) -> PermissionState:
		return self.permission

	def subscribe_permission(self, callback):
		self.permission_listeners.append(callback)

		def unsubscribe() -> None:
			if callback in self.permission_listeners:
				self.permission_listeners.remove(callback)

		return unsubscribe

	def emit(self, lat: float, lng: float) -> None:
		for callback, _ in list(self.watches.values()):
			callback(Position(lat=lat, lng=lng))

	def fail(self, error: BaseException) -> None:
		for _, error_callback in list(self.watches.values()):
			error_callback(error)

	def change_permission(self, state: PermissionState) -> None:
		self.permission = state
		for listener in list(self.permission_listeners):
			listener(state)


@pytest.fixture
def geolocation() -> FakeGeolocation:
	return FakeGeolocation(Position(lat=-33.87, lng=151.21))


@pytest.fixture
def make_geolocation():
	return FakeGeolocation


class FakeMeetups:
	def __init__(self, *, succeed: bool = True) -> None:
		self.succeed = succeed
		self.pending: Set[str] = set()
		self.accepted: Set[str] = set()
		self.sent: List[tuple[str, str, int, str]] = []

	def pending_outbound(self, actor_id: str) -> Set[str]:
		return set(self.pending)

	def accepted_contacts(self, actor_id: str) -> Set[str]:
		return set(self.accepted)

	async def send(self, sender_id: str, receiver_id: str, duration_minutes: int, meet_location: str) -> bool:
		self.sent.append((sender_id, receiver_id, duration_minutes, meet_location))
		return self.succeed


@pytest.fixture
def meetups() -> FakeMeetups:
	return FakeMeetups()

