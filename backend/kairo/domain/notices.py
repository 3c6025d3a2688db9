"""User-visible notices raised by the map engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

NoticeVariant = Literal["default", "destructive"]


@dataclass(frozen=True, slots=True)
class Notice:
	title: str
	description: str
	variant: NoticeVariant = "default"


class Notifier(Protocol):
	def notify(self, notice: Notice) -> None:
		...


class LoggingNotifier:
	"""Fallback notifier that only records notices in the log."""

	def notify(self, notice: Notice) -> None:
		logger.info("notice title=%s variant=%s", notice.title, notice.variant)


DEFAULT_LOCATION_USED = Notice(
	title="Default Location Used",
	description="Using a default location. Enable location access for accuracy.",
	variant="destructive",
)

MANUAL_MODE_HINT = Notice(
	title="Manual Location Mode",
	description="Click anywhere on the map to set your location.",
)

MANUAL_LOCATION_SET = Notice(
	title="Location Updated",
	description="Your location has been set manually.",
)

MEETUP_REQUEST_FAILED = Notice(
	title="Error",
	description="Failed to send meetup request. Please try again.",
	variant="destructive",
)


def meeting_confirmed(name: str, place: str, duration_minutes: int) -> Notice:
	return Notice(
		title="Catch up confirmed!",
		description=f"Meeting {name} at {place} for {duration_minutes} minutes.",
	)


def privacy_toggled(enabled: bool) -> Notice:
	if enabled:
		return Notice(title="Privacy Mode Enabled", description="Your exact location is now hidden from others")
	return Notice(title="Privacy Mode Disabled", description="Your exact location is now visible to others")
