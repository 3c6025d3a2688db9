"""Coalesces recompute triggers into throttled, change-detected map updates."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Hashable, Optional, Sequence

from kairo.domain.proximity.models import ActorPresence
from kairo.domain.proximity.schemas import TrackingConfig
from kairo.obs import metrics as obs_metrics
from kairo.settings import settings

logger = logging.getLogger(__name__)


def _point_key(actor: ActorPresence) -> Optional[tuple[float, float]]:
	if actor.location is None:
		return None
	return (actor.location.lat, actor.location.lng)


@dataclass(frozen=True, slots=True)
class MapSnapshot:
	"""Everything a recompute reads, captured at execution time."""

	roster: Sequence[ActorPresence]
	self_actor: ActorPresence
	config: TrackingConfig

	def fingerprint(self) -> Hashable:
		members = tuple(
			sorted(
				(
					actor.id,
					_point_key(actor),
					actor.privacy_enabled,
					actor.online,
					actor.is_business,
					tuple(sorted(actor.blocked_by)),
				)
				for actor in self.roster
			)
		)
		return (
			members,
			self.self_actor.id,
			_point_key(self.self_actor),
			tuple(sorted(self.self_actor.blocked_by)),
			self.config.is_tracking,
			self.config.is_privacy_enabled,
			self.config.radius_km,
		)


class UpdateScheduler:
	"""Leading+trailing throttle in front of the recompute pipeline.

	The first trigger of a burst runs on the next loop iteration; triggers
	arriving during the following window collapse into a single trailing run.
	Executions never overlap and always read the latest snapshot.
	"""

	def __init__(
		self,
		*,
		snapshot: Callable[[], MapSnapshot],
		on_markers: Callable[[MapSnapshot], None],
		on_circles: Callable[[MapSnapshot], None],
		window_ms: Optional[int] = None,
	) -> None:
		self._snapshot = snapshot
		self._on_markers = on_markers
		self._on_circles = on_circles
		self.window_s = (settings.recompute_window_ms if window_ms is None else window_ms) / 1000.0
		self._handle: Optional[asyncio.Handle] = None
		self._dirty = False
		self._closed = False
		self._last_fingerprint: Optional[Hashable] = None
		self.executions = 0
		self.marker_passes = 0

	@property
	def pending(self) -> bool:
		return self._handle is not None

	@property
	def closed(self) -> bool:
		return self._closed

	def request_recompute(self, reason: str) -> None:
		if self._closed:
			return
		obs_metrics.inc_trigger(reason)
		self._dirty = True
		if self._handle is None:
			self._handle = asyncio.get_running_loop().call_soon(self._fire)

	def close(self) -> None:
		self._closed = True
		self._dirty = False
		if self._handle is not None:
			self._handle.cancel()
			self._handle = None

	def _fire(self) -> None:
		self._handle = None
		if self._closed or not self._dirty:
			return
		self._dirty = False
		self._execute()
		if not self._closed:
			self._handle = asyncio.get_running_loop().call_later(self.window_s, self._fire)

	def _execute(self) -> None:
		started = time.perf_counter()
		self.executions += 1
		try:
			snapshot = self._snapshot()
			fingerprint = snapshot.fingerprint()
			if fingerprint != self._last_fingerprint:
				self._on_markers(snapshot)
				self._last_fingerprint = fingerprint
				self.marker_passes += 1
				result = "executed"
			else:
				result = "skipped"
			self._on_circles(snapshot)
		except Exception:
			obs_metrics.inc_recompute("failed")
			logger.exception("map recompute failed")
			return
		obs_metrics.inc_recompute(result)
		obs_metrics.MAP_RECOMPUTE_LATENCY.observe(time.perf_counter() - started)


__all__ = ["MapSnapshot", "UpdateScheduler"]
