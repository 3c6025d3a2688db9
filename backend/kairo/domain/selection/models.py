"""Selection state, UI cards and meeting animation models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Protocol, Set

from kairo.domain.proximity.geo import GeoPoint, lerp


class SelectionPhase(str, Enum):
    IDLE = "idle"
    SELECTED = "selected"
    PENDING_REQUEST = "pending_request"
    MOVING = "moving"
    COMPLETED = "completed"


class SelectionCard(str, Enum):
    NONE = "none"
    REQUEST = "request"
    PENDING = "pending"
    ACTIVE_MEETING = "active_meeting"
    COMPLETED = "completed"


CARD_FOR_PHASE = {
    SelectionPhase.IDLE: SelectionCard.NONE,
    SelectionPhase.SELECTED: SelectionCard.REQUEST,
    SelectionPhase.PENDING_REQUEST: SelectionCard.PENDING,
    SelectionPhase.MOVING: SelectionCard.ACTIVE_MEETING,
    SelectionPhase.COMPLETED: SelectionCard.COMPLETED,
}


@dataclass(frozen=True, slots=True)
class SelectionState:
    selected_id: Optional[str] = None
    moving: FrozenSet[str] = field(default_factory=frozenset)
    completed: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True)
class SelectionView:
    """What the UI layer renders for the current selection."""

    phase: SelectionPhase
    selected_id: Optional[str]
    card: SelectionCard


@dataclass(frozen=True, slots=True)
class MeetingAnimation:
    """Marker travel from an actor's position to the meeting point."""

    actor_id: str
    start_point: GeoPoint
    end_point: GeoPoint
    start_time: float
    duration_ms: int
    bounce_amplitude_deg: float = 0.0001

    def progress_at(self, now: float) -> float:
        if self.duration_ms <= 0:
            return 1.0
        elapsed_ms = (now - self.start_time) * 1000.0
        return min(1.0, max(0.0, elapsed_ms / self.duration_ms))

    def position_at(self, now: float) -> GeoPoint:
        progress = self.progress_at(now)
        if progress >= 1.0:
            return self.end_point
        lat, lng = lerp(self.start_point, self.end_point, progress)
        lat += math.sin(progress * math.pi * 8) * self.bounce_amplitude_deg
        return GeoPoint(max(-90.0, min(90.0, lat)), lng)


class MeetupRequests(Protocol):
    """Meetup request collaborator owned by the social backend."""

    def pending_outbound(self, actor_id: str) -> Set[str]:
        ...

    def accepted_contacts(self, actor_id: str) -> Set[str]:
        ...

    async def send(
        self,
        sender_id: str,
        receiver_id: str,
        duration_minutes: int,
        meet_location: str,
    ) -> bool:
        ...


__all__ = [
    "SelectionPhase",
    "SelectionCard",
    "CARD_FOR_PHASE",
    "SelectionState",
    "SelectionView",
    "MeetingAnimation",
    "MeetupRequests",
]
