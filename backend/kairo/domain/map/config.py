"""Observable holder for the UI-owned tracking configuration."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from kairo.domain.proximity.schemas import TrackingConfig
from kairo.settings import settings

logger = logging.getLogger(__name__)

ConfigListener = Callable[[TrackingConfig, TrackingConfig], None]


class TrackingConfigStore:
	"""Holds the current TrackingConfig and notifies subscribers on change.

	Updates are validated as a whole, so an out-of-range radius raises before
	any listener sees it.
	"""

	def __init__(self, initial: Optional[TrackingConfig] = None) -> None:
		self._config = initial or TrackingConfig(radius_km=settings.proximity_default_radius_km)
		self._listeners: Dict[int, ConfigListener] = {}
		self._next_token = 0

	@property
	def current(self) -> TrackingConfig:
		return self._config

	def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
		token = self._next_token
		self._next_token += 1
		self._listeners[token] = listener

		def unsubscribe() -> None:
			self._listeners.pop(token, None)

		return unsubscribe

	def update(self, **changes: Any) -> TrackingConfig:
		previous = self._config
		merged = previous.model_dump()
		merged.update(changes)
		updated = TrackingConfig.model_validate(merged)
		if updated == previous:
			return previous
		self._config = updated
		for listener in list(self._listeners.values()):
			try:
				listener(previous, updated)
			except Exception:
				logger.exception("tracking config listener failed")
		return updated

	@property
	def listener_count(self) -> int:
		return len(self._listeners)


__all__ = ["TrackingConfigStore", "ConfigListener"]
