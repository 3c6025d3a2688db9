"""Frame loop moving a marker to the meeting point."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Callable, Dict, Optional

from kairo.domain.proximity.geo import GeoPoint
from kairo.domain.selection.models import MeetingAnimation
from kairo.obs import metrics as obs_metrics
from kairo.settings import settings

logger = logging.getLogger(__name__)

FrameCallback = Callable[[str, GeoPoint], None]
DoneCallback = Callable[[str], None]


class MeetingAnimator:
	"""Runs one asyncio task per animated actor."""

	def __init__(
		self,
		*,
		on_frame: FrameCallback,
		on_done: DoneCallback,
		duration_ms: Optional[int] = None,
		frame_ms: Optional[int] = None,
		bounce_amplitude_deg: Optional[float] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._on_frame = on_frame
		self._on_done = on_done
		self.duration_ms = settings.meeting_animation_ms if duration_ms is None else duration_ms
		self._frame_s = (settings.animation_frame_ms if frame_ms is None else frame_ms) / 1000.0
		self.bounce_amplitude_deg = (
			settings.meeting_bounce_amplitude_deg if bounce_amplitude_deg is None else bounce_amplitude_deg
		)
		self._clock = clock
		self._tasks: Dict[str, asyncio.Task] = {}
		self.animations: Dict[str, MeetingAnimation] = {}

	def active(self, actor_id: str) -> bool:
		task = self._tasks.get(actor_id)
		return task is not None and not task.done()

	def start(self, actor_id: str, start_point: GeoPoint, end_point: GeoPoint) -> MeetingAnimation:
		self.cancel(actor_id)
		animation = MeetingAnimation(
			actor_id=actor_id,
			start_point=start_point,
			end_point=end_point,
			start_time=self._clock(),
			duration_ms=self.duration_ms,
			bounce_amplitude_deg=self.bounce_amplitude_deg,
		)
		self.animations[actor_id] = animation
		self._tasks[actor_id] = asyncio.get_running_loop().create_task(
			self._run(animation), name=f"meeting-animation:{actor_id}"
		)
		obs_metrics.inc_meeting_animation("started")
		return animation

	def cancel(self, actor_id: str) -> None:
		task = self._tasks.pop(actor_id, None)
		self.animations.pop(actor_id, None)
		if task is not None and not task.done():
			task.cancel()
			obs_metrics.inc_meeting_animation("cancelled")

	async def stop_all(self) -> None:
		tasks = list(self._tasks.values())
		for actor_id in list(self._tasks):
			self.cancel(actor_id)
		for task in tasks:
			with suppress(asyncio.CancelledError):
				await task

	async def _run(self, animation: MeetingAnimation) -> None:
		while True:
			now = self._clock()
			try:
				self._on_frame(animation.actor_id, animation.position_at(now))
			except Exception:
				logger.exception("meeting animation frame failed actor=%s", animation.actor_id)
			if animation.progress_at(now) >= 1.0:
				break
			await asyncio.sleep(self._frame_s)
		self._tasks.pop(animation.actor_id, None)
		self.animations.pop(animation.actor_id, None)
		obs_metrics.inc_meeting_animation("completed")
		try:
			self._on_done(animation.actor_id)
		except Exception:
			logger.exception("meeting animation completion failed actor=%s", animation.actor_id)


__all__ = ["MeetingAnimator"]
