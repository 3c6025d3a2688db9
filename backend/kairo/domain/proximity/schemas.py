"""Pydantic schemas for roster payloads and the tracking configuration."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kairo.domain.proximity.exceptions import InvalidActorRecord
from kairo.domain.proximity.geo import GeoPoint
from kairo.domain.proximity.models import ActorPresence
from kairo.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class TrackingConfig(BaseModel):
	"""UI-owned map settings; the engine only reads them."""

	model_config = ConfigDict(frozen=True)

	radius_km: float = Field(default=5.0, ge=1.0, le=100.0)
	is_tracking: bool = True
	is_manual_mode: bool = False
	is_privacy_enabled: bool = False


class ActorPresencePayload(BaseModel):
	"""Roster record as delivered by the roster collaborator."""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	id: str = Field(..., min_length=1)
	name: str = ""
	lat: Optional[float] = None
	lng: Optional[float] = Field(default=None, alias="lon")
	online: bool = Field(default=True, alias="is_online")
	privacy_enabled: bool = Field(default=False, alias="hide_exact_location")
	blocked_by: List[str] = Field(default_factory=list)
	is_business: bool = False

	@field_validator("id", mode="before")
	def _stringify_id(cls, value: Any) -> Any:
		if value is None:
			return value
		return str(value).strip()

	@field_validator("lat", "lng", mode="before")
	def _lenient_coordinate(cls, value: Any) -> Any:
		# A garbled coordinate drops the location, not the record.
		if value is None or isinstance(value, bool):
			return None
		try:
			number = float(value)
		except (TypeError, ValueError):
			return None
		return number if math.isfinite(number) else None

	@field_validator("blocked_by", mode="before")
	def _normalise_blocks(cls, value: Any) -> Any:
		if value in (None, ""):
			return []
		if isinstance(value, str):
			return [part.strip() for part in value.split(",") if part.strip()]
		return [str(item) for item in value]

	def to_domain(self) -> ActorPresence:
		location = None
		if self.lat is not None and self.lng is not None:
			location = GeoPoint.parse(self.lat, self.lng)
		return ActorPresence(
			id=self.id,
			name=self.name,
			location=location,
			online=self.online,
			privacy_enabled=self.privacy_enabled,
			blocked_by=frozenset(self.blocked_by),
			is_business=self.is_business,
		)


def parse_record(raw: Any) -> ActorPresence:
	if isinstance(raw, ActorPresence):
		return raw
	try:
		return ActorPresencePayload.model_validate(raw).to_domain()
	except ValidationError as exc:
		raise InvalidActorRecord() from exc


def parse_roster(payloads: Iterable[Any]) -> list[ActorPresence]:
	"""Validate raw roster records; unusable ids are dropped, bad locations become None."""
	roster: list[ActorPresence] = []
	seen: set[str] = set()
	for raw in payloads:
		try:
			actor = parse_record(raw)
		except InvalidActorRecord as exc:
			if logger.isEnabledFor(logging.DEBUG):
				logger.debug("roster skip record reason=%s", exc.reason)
			obs_metrics.inc_roster_invalid("invalid")
			continue
		if actor.id in seen:
			obs_metrics.inc_roster_invalid("duplicate")
			continue
		seen.add(actor.id)
		roster.append(actor)
	return roster


__all__ = ["TrackingConfig", "ActorPresencePayload", "parse_record", "parse_roster"]
