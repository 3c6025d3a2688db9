"""Domain models used by the proximity pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from kairo.domain.proximity.geo import GeoPoint


@dataclass(frozen=True, slots=True)
class ActorPresence:
	"""Read-only roster snapshot for one actor; replaced, never mutated."""

	id: str
	name: str = ""
	location: Optional[GeoPoint] = None
	online: bool = True
	privacy_enabled: bool = False
	blocked_by: frozenset[str] = field(default_factory=frozenset)
	is_business: bool = False

	@property
	def label(self) -> str:
		return self.name or f"User-{self.id[:4]}"

	def with_location(self, location: Optional[GeoPoint]) -> "ActorPresence":
		return ActorPresence(
			id=self.id,
			name=self.name,
			location=location,
			online=self.online,
			privacy_enabled=self.privacy_enabled,
			blocked_by=self.blocked_by,
			is_business=self.is_business,
		)

	def with_privacy(self, enabled: bool) -> "ActorPresence":
		return ActorPresence(
			id=self.id,
			name=self.name,
			location=self.location,
			online=self.online,
			privacy_enabled=enabled,
			blocked_by=self.blocked_by,
			is_business=self.is_business,
		)


@dataclass(frozen=True, slots=True)
class ClusterGroup:
	"""A partition cell of the filtered roster."""

	center: GeoPoint
	members: tuple[ActorPresence, ...]
	radius_km: float

	@property
	def size(self) -> int:
		return len(self.members)

	@property
	def is_single(self) -> bool:
		return len(self.members) == 1

	@property
	def member_ids(self) -> tuple[str, ...]:
		return tuple(member.id for member in self.members)


@dataclass(frozen=True, slots=True)
class NearbyEntry:
	actor: ActorPresence
	distance_km: Optional[float]


@dataclass(frozen=True, slots=True)
class ProximitySummary:
	"""Distance-ordered roster backing the nearby list panel."""

	entries: tuple[NearbyEntry, ...]
	business_count: int
	radius_km: float

	@property
	def count(self) -> int:
		return len(self.entries)
