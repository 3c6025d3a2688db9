"""Central registry for Prometheus metrics used by the map engine."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

log = logging.getLogger(__name__)


MAP_TRIGGERS = Counter(
	"kairo_map_triggers_total",
	"Recompute triggers received by the update scheduler",
	["reason"],
)

MAP_RECOMPUTES = Counter(
	"kairo_map_recomputes_total",
	"Scheduled recompute executions",
	["result"],
)

MAP_RECOMPUTE_LATENCY = Histogram(
	"kairo_map_recompute_duration_seconds",
	"Time spent filtering, clustering and syncing markers",
	buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)

MAP_FEATURES = Gauge(
	"kairo_map_features",
	"Features currently owned by the marker store",
	["kind"],
)

MAP_CLUSTERS = Gauge(
	"kairo_map_clusters",
	"Cluster groups produced by the last recompute",
)

LOCATION_FIXES = Counter(
	"kairo_location_fixes_total",
	"Geolocation fixes accepted",
	["mode"],
)

LOCATION_ERRORS = Counter(
	"kairo_location_errors_total",
	"Geolocation failures by kind",
	["kind"],
)

LOCATION_SUPPRESSED = Counter(
	"kairo_location_requests_suppressed_total",
	"One-shot location requests suppressed by the in-flight/interval guards",
	["reason"],
)

LOCATION_PERSISTS = Counter(
	"kairo_location_persists_total",
	"Self-location writes handed to the persistence collaborator",
	["result"],
)

ROSTER_UPDATES = Counter(
	"kairo_roster_updates_total",
	"Roster snapshots applied",
	["source"],
)

ROSTER_FAILURES = Counter(
	"kairo_roster_failures_total",
	"Roster refreshes that failed; the last roster stays on screen",
)

ROSTER_INVALID_RECORDS = Counter(
	"kairo_roster_invalid_records_total",
	"Roster records dropped during parsing",
	["reason"],
)

SELECTION_TRANSITIONS = Counter(
	"kairo_selection_transitions_total",
	"Selection state machine transitions",
	["phase"],
)

MEETING_ANIMATIONS = Counter(
	"kairo_meeting_animations_total",
	"Meeting animations by outcome",
	["result"],
)


def inc_trigger(reason: str) -> None:
	MAP_TRIGGERS.labels(reason=reason).inc()


def inc_recompute(result: str) -> None:
	MAP_RECOMPUTES.labels(result=result).inc()


def set_feature_counts(counts: dict[str, int]) -> None:
	for kind, count in counts.items():
		MAP_FEATURES.labels(kind=kind).set(float(count))


def set_cluster_count(count: int) -> None:
	MAP_CLUSTERS.set(float(count))


def inc_location_fix(mode: str) -> None:
	LOCATION_FIXES.labels(mode=mode).inc()


def inc_location_error(kind: str) -> None:
	LOCATION_ERRORS.labels(kind=kind).inc()


def inc_location_suppressed(reason: str) -> None:
	LOCATION_SUPPRESSED.labels(reason=reason).inc()


def inc_location_persist(result: str) -> None:
	LOCATION_PERSISTS.labels(result=result).inc()


def inc_roster_update(source: str) -> None:
	ROSTER_UPDATES.labels(source=source).inc()


def inc_roster_failure() -> None:
	ROSTER_FAILURES.inc()


def inc_roster_invalid(reason: str) -> None:
	ROSTER_INVALID_RECORDS.labels(reason=reason).inc()


def inc_selection(phase: str) -> None:
	SELECTION_TRANSITIONS.labels(phase=phase).inc()


def inc_meeting_animation(result: str) -> None:
	MEETING_ANIMATIONS.labels(result=result).inc()


__all__ = [
	"MAP_TRIGGERS",
	"MAP_RECOMPUTES",
	"MAP_RECOMPUTE_LATENCY",
	"MAP_FEATURES",
	"MAP_CLUSTERS",
	"LOCATION_FIXES",
	"LOCATION_ERRORS",
	"LOCATION_SUPPRESSED",
	"LOCATION_PERSISTS",
	"ROSTER_UPDATES",
	"ROSTER_FAILURES",
	"ROSTER_INVALID_RECORDS",
	"SELECTION_TRANSITIONS",
	"MEETING_ANIMATIONS",
	"inc_trigger",
	"inc_recompute",
	"set_feature_counts",
	"set_cluster_count",
	"inc_location_fix",
	"inc_location_error",
	"inc_location_suppressed",
	"inc_location_persist",
	"inc_roster_update",
	"inc_roster_failure",
	"inc_roster_invalid",
	"inc_selection",
	"inc_meeting_animation",
]
