"""Deterministic marker styling."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from kairo.domain.map.features import (
	ActorMarker,
	ClusterMarker,
	MapFeature,
	PrivacyCircle,
	RadiusCircle,
	SelfMarker,
)

SELF_COLOR = "#0ea5e9"
SELF_STROKE = "#0369a1"
MEETING_COLOR = "#10b981"
FRIEND_COLOR = "#10b981"
PENDING_COLOR = "#fef08a"
SELECTED_STROKE = "#f59e0b"
DEFAULT_COLOR = "#6366f1"
BUSINESS_COLOR = "#10b981"
RADIUS_STROKE = "rgba(64, 99, 255, 0.5)"
RADIUS_FILL = "#4063ff"
PRIVACY_COLOR = "#9b87f5"
WHITE = "white"

PRIVACY_MARKER_RADIUS_PX = 8
ACTOR_MARKER_RADIUS_PX = 12
SELF_MARKER_RADIUS_PX = 14
SINGLE_CLUSTER_RADIUS_PX = 20
CLUSTER_RADIUS_PX = 30


@dataclass(frozen=True, slots=True)
class MarkerStyle:
	color: str
	radius_px: float
	fill_opacity: float = 1.0
	stroke_color: str = WHITE
	stroke_width: float = 2.0
	label: Optional[str] = None


@dataclass(frozen=True, slots=True)
class StyleContext:
	"""Selection and relationship state that affects marker colour."""

	selected_id: Optional[str] = None
	moving: FrozenSet[str] = field(default_factory=frozenset)
	completed: FrozenSet[str] = field(default_factory=frozenset)
	pending_ids: FrozenSet[str] = field(default_factory=frozenset)
	friend_ids: FrozenSet[str] = field(default_factory=frozenset)


def _actor_color(marker: ActorMarker, context: StyleContext) -> str:
	if marker.moving or marker.completed:
		return MEETING_COLOR
	if marker.actor_id in context.friend_ids:
		return FRIEND_COLOR
	if marker.actor_id in context.pending_ids:
		return PENDING_COLOR
	if marker.business:
		return BUSINESS_COLOR
	return DEFAULT_COLOR


def style_for(feature: MapFeature, context: Optional[StyleContext] = None) -> MarkerStyle:
	ctx = context or StyleContext()
	if isinstance(feature, SelfMarker):
		return MarkerStyle(
			color=SELF_COLOR,
			radius_px=SELF_MARKER_RADIUS_PX,
			stroke_color=SELF_STROKE,
			stroke_width=3.0,
		)
	if isinstance(feature, ActorMarker):
		color = _actor_color(feature, ctx)
		radius_px = PRIVACY_MARKER_RADIUS_PX if feature.privacy else ACTOR_MARKER_RADIUS_PX
		if feature.actor_id == ctx.selected_id:
			return MarkerStyle(color=color, radius_px=radius_px, stroke_color=SELECTED_STROKE, stroke_width=4.0)
		return MarkerStyle(color=color, radius_px=radius_px)
	if isinstance(feature, ClusterMarker):
		color = BUSINESS_COLOR if feature.business else DEFAULT_COLOR
		if feature.count == 1:
			return MarkerStyle(color=color, radius_px=SINGLE_CLUSTER_RADIUS_PX)
		return MarkerStyle(
			color=color,
			radius_px=CLUSTER_RADIUS_PX,
			fill_opacity=0.5,
			stroke_color=color,
			stroke_width=3.0,
			label=str(feature.count),
		)
	if isinstance(feature, RadiusCircle):
		return MarkerStyle(
			color=RADIUS_FILL,
			radius_px=0,
			fill_opacity=0.05,
			stroke_color=RADIUS_STROKE,
			stroke_width=2.0,
		)
	if isinstance(feature, PrivacyCircle):
		return MarkerStyle(
			color=PRIVACY_COLOR,
			radius_px=0,
			fill_opacity=feature.opacity,
			stroke_color=PRIVACY_COLOR,
			stroke_width=2.0,
		)
	raise TypeError(f"unknown map feature: {type(feature).__name__}")


__all__ = ["MarkerStyle", "StyleContext", "SELECTED_STROKE", "style_for"]
