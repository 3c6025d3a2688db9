"""Cosmetic opacity pulse for the self privacy circle."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Callable, Optional

from kairo.settings import settings

logger = logging.getLogger(__name__)


def pulse_opacity(elapsed_ms: float, low: float, high: float, period_ms: float) -> float:
	"""Triangle wave from `low` up to `high` over one period and back over the next."""
	if period_ms <= 0:
		return low
	phase = (max(0.0, elapsed_ms) % (2 * period_ms)) / period_ms
	progress = phase if phase <= 1.0 else 2.0 - phase
	return low + (high - low) * progress


class PrivacyPulse:
	def __init__(
		self,
		on_frame: Callable[[float], None],
		*,
		low: Optional[float] = None,
		high: Optional[float] = None,
		period_ms: Optional[int] = None,
		frame_ms: Optional[int] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._on_frame = on_frame
		self.low = settings.privacy_pulse_min_opacity if low is None else low
		self.high = settings.privacy_pulse_max_opacity if high is None else high
		self.period_ms = settings.privacy_pulse_period_ms if period_ms is None else period_ms
		self._frame_s = (settings.animation_frame_ms if frame_ms is None else frame_ms) / 1000.0
		self._clock = clock
		self._task: Optional[asyncio.Task] = None

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	def restart(self) -> None:
		if self._task is not None:
			self._task.cancel()
		self._task = asyncio.get_running_loop().create_task(self._run(), name="privacy-pulse")

	def cancel(self) -> None:
		task = self._task
		self._task = None
		if task is not None:
			task.cancel()

	async def stop(self) -> None:
		task = self._task
		self._task = None
		if task is None:
			return
		task.cancel()
		with suppress(asyncio.CancelledError):
			await task

	async def _run(self) -> None:
		started = self._clock()
		while True:
			elapsed_ms = (self._clock() - started) * 1000.0
			try:
				self._on_frame(pulse_opacity(elapsed_ms, self.low, self.high, self.period_ms))
			except Exception:
				logger.exception("privacy pulse frame failed")
			await asyncio.sleep(self._frame_s)


__all__ = ["PrivacyPulse", "pulse_opacity"]
