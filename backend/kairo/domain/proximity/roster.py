"""Redis-backed roster collaborator and the background roster poller."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Callable, Dict, List, Optional, Protocol

from kairo.domain.proximity.exceptions import RosterFetchFailed
from kairo.domain.proximity.geo import GeoPoint
from kairo.domain.proximity.models import ActorPresence
from kairo.domain.proximity.schemas import parse_roster
from kairo.infra.redis import redis_client
from kairo.settings import settings

logger = logging.getLogger(__name__)


def presence_key(actor_id: str) -> str:
	return f"presence:{actor_id}"


def area_geo_key(area_id: str) -> str:
	return f"geo:presence:{area_id}"


def blocks_key(actor_id: str) -> str:
	return f"blocks:{actor_id}"


def _flag(raw: Optional[str], default: bool = False) -> bool:
	if raw is None:
		return default
	return str(raw).lower() in ("1", "true", "yes")


class RosterSource(Protocol):
	"""Read-only roster scoped to an approximate area around `center`."""

	async def fetch(self, center: Optional[GeoPoint], radius_km: float) -> List[ActorPresence]:
		...


class RedisRosterSource:
	"""Reads presence hashes from the area GEO set written by the location store."""

	def __init__(self, area_id: str, *, client=redis_client, stale_seconds: Optional[int] = None) -> None:
		self.area_id = area_id
		self._client = client
		self._stale_seconds = settings.presence_stale_seconds if stale_seconds is None else stale_seconds

	async def fetch(self, center: Optional[GeoPoint], radius_km: float) -> List[ActorPresence]:
		try:
			member_ids = await self._candidate_ids(center, radius_km)
			records = [await self._load_record(member_id) for member_id in member_ids]
		except Exception as exc:
			raise RosterFetchFailed() from exc
		return parse_roster(record for record in records if record is not None)

	async def _candidate_ids(self, center: Optional[GeoPoint], radius_km: float) -> List[str]:
		key = area_geo_key(self.area_id)
		if center is None:
			members = await self._client.zrange(key, 0, settings.roster_max_candidates - 1)
			return [str(member) for member in members]
		results = await self._client.geosearch(
			key,
			longitude=center.lng,
			latitude=center.lat,
			radius=radius_km,
			unit="km",
			withdist=True,
			sort="ASC",
			count=settings.roster_max_candidates,
		)
		return [str(member) for member, _ in results]

	async def _load_record(self, actor_id: str) -> Optional[Dict[str, object]]:
		raw = await self._client.hgetall(presence_key(actor_id))
		if not raw:
			return None
		ts_raw = raw.get("ts")
		online = _flag(raw.get("online"), default=True)
		if ts_raw:
			try:
				age_ms = int(time.time() * 1000) - int(ts_raw)
			except ValueError:
				age_ms = None
			# A stale heartbeat keeps the record but marks the actor offline.
			if age_ms is None or age_ms > self._stale_seconds * 1000:
				online = False
		blocked = await self._client.smembers(blocks_key(actor_id))
		return {
			"id": actor_id,
			"name": raw.get("name", ""),
			"lat": raw.get("lat"),
			"lon": raw.get("lon"),
			"online": online,
			"privacy_enabled": _flag(raw.get("hide_exact_location")),
			"blocked_by": sorted(str(member) for member in blocked or ()),
			"is_business": _flag(raw.get("is_business")),
		}


class RedisLocationStore:
	"""Persistence collaborator writing the local actor's presence hash and GEO entry."""

	def __init__(self, area_id: str, *, client=redis_client, ttl_seconds: Optional[int] = None) -> None:
		self.area_id = area_id
		self._client = client
		self._ttl_seconds = settings.presence_ttl_seconds if ttl_seconds is None else ttl_seconds

	async def save_self_location(self, actor_id: str, point: GeoPoint, *, hide_exact_location: bool) -> None:
		key = presence_key(actor_id)
		mapping = {
			"lat": str(point.lat),
			"lon": str(point.lng),
			"ts": str(int(time.time() * 1000)),
			"online": "1",
			"hide_exact_location": "1" if hide_exact_location else "0",
			"area_id": self.area_id,
		}
		await self._client.hset(key, mapping=mapping)
		await self._client.expire(key, self._ttl_seconds)
		await self._client.geoadd(area_geo_key(self.area_id), {actor_id: (point.lng, point.lat)})


RosterSink = Callable[[List[ActorPresence]], None]
FailureSink = Callable[[Exception], None]


class RosterPoller:
	"""Periodically refreshes the roster and hands each snapshot to the engine."""

	def __init__(
		self,
		source: RosterSource,
		*,
		on_roster: RosterSink,
		on_failure: FailureSink,
		center: Callable[[], Optional[GeoPoint]],
		radius_km: Callable[[], float],
		interval_s: Optional[float] = None,
	) -> None:
		self._source = source
		self._on_roster = on_roster
		self._on_failure = on_failure
		self._center = center
		self._radius_km = radius_km
		self._interval = max(0.01, float(settings.roster_poll_interval_seconds if interval_s is None else interval_s))
		self._task: Optional[asyncio.Task] = None

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	def start(self) -> None:
		if self.running:
			return
		self._task = asyncio.create_task(self._run(), name="roster-poller")

	async def stop(self) -> None:
		task = self._task
		self._task = None
		if task is None:
			return
		task.cancel()
		with suppress(asyncio.CancelledError):
			await task

	async def poll_once(self) -> bool:
		try:
			roster = await self._source.fetch(self._center(), self._radius_km())
		except RosterFetchFailed as exc:
			self._on_failure(exc)
			return False
		self._on_roster(roster)
		return True

	async def _run(self) -> None:
		while True:
			try:
				await self.poll_once()
			except asyncio.CancelledError:
				raise
			except Exception:  # pragma: no cover
				logger.exception("roster poll iteration failed")
			await asyncio.sleep(self._interval)


__all__ = [
	"RosterSource",
	"RedisRosterSource",
	"RedisLocationStore",
	"RosterPoller",
	"presence_key",
	"area_geo_key",
	"blocks_key",
]
