"""Proximity map engine: wires location, roster, markers and selection together."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, Iterable, Optional

from kairo.domain.location.exceptions import LocationError
from kairo.domain.location.models import GeolocationSource, LocationPersistence, LocationResult, LocationSource
from kairo.domain.location.service import LocationProvider
from kairo.domain.map.config import TrackingConfigStore
from kairo.domain.map.features import ClusterMarker, RadiusCircle, SelfMarker, is_circle
from kairo.domain.map.scheduler import MapSnapshot, UpdateScheduler
from kairo.domain.map.store import MarkerStore
from kairo.domain.map.styles import StyleContext
from kairo.domain.map.surface import MapSurface, ScreenPoint
from kairo.domain.notices import (
	MANUAL_MODE_HINT,
	MEETUP_REQUEST_FAILED,
	LoggingNotifier,
	Notifier,
	meeting_confirmed,
	privacy_toggled,
)
from kairo.domain.privacy.pulse import PrivacyPulse
from kairo.domain.privacy.service import PrivacyObfuscator
from kairo.domain.proximity.exceptions import RosterFetchFailed
from kairo.domain.proximity.geo import GeoPoint
from kairo.domain.proximity.models import ActorPresence, ProximitySummary
from kairo.domain.proximity.roster import RosterPoller, RosterSource
from kairo.domain.proximity.schemas import TrackingConfig, parse_roster
from kairo.domain.proximity.service import filter_and_cluster, summarize
from kairo.domain.selection.animation import MeetingAnimator
from kairo.domain.selection.exceptions import SelectionError
from kairo.domain.selection.models import MeetupRequests, SelectionView
from kairo.domain.selection.service import SelectionStateMachine
from kairo.obs import logging as obs_logging
from kairo.obs import metrics as obs_metrics
from kairo.settings import settings

logger = logging.getLogger(__name__)


class ProximityMapEngine:
	"""Owns every component of one map session and its teardown.

	All roster, location and configuration changes funnel into the update
	scheduler; the marker store is the only writer of features.
	"""

	def __init__(
		self,
		self_actor: ActorPresence,
		*,
		surface: MapSurface,
		geolocation: Optional[GeolocationSource] = None,
		config_store: Optional[TrackingConfigStore] = None,
		persistence: Optional[LocationPersistence] = None,
		meetups: Optional[MeetupRequests] = None,
		roster_source: Optional[RosterSource] = None,
		roster_poll_interval_s: Optional[float] = None,
		notifier: Optional[Notifier] = None,
		obfuscator: Optional[PrivacyObfuscator] = None,
		clock: Callable[[], float] = time.monotonic,
		window_ms: Optional[int] = None,
		cluster_radius_km: Optional[float] = None,
		hit_tolerance_px: Optional[float] = None,
		meeting_point: Optional[GeoPoint] = None,
		meeting_point_name: Optional[str] = None,
		map_id: Optional[str] = None,
	) -> None:
		self.map_id = map_id or uuid.uuid4().hex
		self._self_actor = self_actor
		self._surface = surface
		self._meetups = meetups
		self._notifier = notifier or LoggingNotifier()
		self._obfuscator = obfuscator or PrivacyObfuscator()
		self._cluster_radius_km = settings.cluster_radius_km if cluster_radius_km is None else cluster_radius_km
		self._hit_tolerance_px = settings.hit_tolerance_px if hit_tolerance_px is None else hit_tolerance_px
		self._meeting_point = meeting_point or GeoPoint(settings.meeting_point_lat, settings.meeting_point_lng)
		self._meeting_point_name = meeting_point_name or settings.meeting_point_name
		self._roster: tuple[ActorPresence, ...] = ()
		self._meeting_minutes: Dict[str, int] = {}
		self._confirming: set[str] = set()
		self._started = False
		self._closed = False

		self.config_store = config_store or TrackingConfigStore()
		self.store = MarkerStore(surface, obfuscator=self._obfuscator)
		self.location = LocationProvider(
			self_actor.id,
			geolocation,
			persistence=persistence,
			notifier=self._notifier,
			on_location=self._on_self_location,
			initial_point=self_actor.location,
			clock=clock,
		)
		self.selection = SelectionStateMachine(
			has_pending_request=self._has_pending_request,
			on_change=self._on_selection_change,
		)
		self.animator = MeetingAnimator(
			on_frame=self.store.move_actor,
			on_done=self._on_meeting_done,
			clock=clock,
		)
		self.pulse = PrivacyPulse(self.store.set_privacy_opacity, clock=clock)
		self.scheduler = UpdateScheduler(
			snapshot=self.snapshot,
			on_markers=self._render_markers,
			on_circles=self._render_circles,
			window_ms=window_ms,
		)
		self.poller: Optional[RosterPoller] = None
		if roster_source is not None:
			self.poller = RosterPoller(
				roster_source,
				on_roster=lambda roster: self.update_roster(roster, source="poll"),
				on_failure=self.roster_failed,
				center=lambda: self.location.current,
				radius_km=lambda: self.config.radius_km,
				interval_s=roster_poll_interval_s,
			)

		config = self.config_store.current
		self.location.hide_exact_location = config.is_privacy_enabled
		self.location.set_manual_mode(config.is_manual_mode)
		self._unsubscribe_config: Optional[Callable[[], None]] = self.config_store.subscribe(self._on_config_change)

	# ------------------------------------------------------------------
	# state

	@property
	def config(self) -> TrackingConfig:
		return self.config_store.current

	@property
	def roster(self) -> tuple[ActorPresence, ...]:
		return self._roster

	@property
	def self_actor(self) -> ActorPresence:
		return self._self_actor.with_location(self.location.current).with_privacy(self.config.is_privacy_enabled)

	def snapshot(self) -> MapSnapshot:
		return MapSnapshot(roster=self._roster, self_actor=self.self_actor, config=self.config)

	def nearby(self) -> ProximitySummary:
		return summarize(self._roster, self.self_actor, self.config.radius_km)

	def selection_view(self) -> SelectionView:
		return self.selection.view()

	# ------------------------------------------------------------------
	# lifecycle

	async def start(self, *, locate: bool = True) -> None:
		if self._started or self._closed:
			return
		self._started = True
		obs_logging.bind_context(map_id=self.map_id, actor_id=self._self_actor.id)
		logger.info("map engine started map=%s", self.map_id)
		config = self.config
		if config.is_tracking and not config.is_manual_mode:
			self._start_watch()
			if locate:
				await self.locate()
		if self.poller is not None:
			self.poller.start()
		self.scheduler.request_recompute("start")

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self.scheduler.close()
		if self.poller is not None:
			await self.poller.stop()
		if self._unsubscribe_config is not None:
			self._unsubscribe_config()
			self._unsubscribe_config = None
		await self.pulse.stop()
		await self.animator.stop_all()
		await self.location.close()
		self.store.clear()
		logger.info("map engine closed map=%s", self.map_id)

	# ------------------------------------------------------------------
	# roster collaborator

	def update_roster(self, roster: Iterable[object], *, source: str = "push") -> None:
		if self._closed:
			return
		self._roster = tuple(parse_roster(roster))
		obs_metrics.inc_roster_update(source)
		self.scheduler.request_recompute("roster")

	def roster_failed(self, error: Optional[Exception] = None) -> None:
		obs_metrics.inc_roster_failure()
		reason = error.reason if isinstance(error, RosterFetchFailed) else "unknown"
		logger.warning("roster refresh failed map=%s reason=%s; keeping last roster", self.map_id, reason)

	# ------------------------------------------------------------------
	# location

	async def locate(self) -> LocationResult:
		result = await self.location.get_once()
		if result.ok and result.point is not None:
			self._surface.animate_view_to(result.point, settings.locate_zoom, settings.locate_animation_ms)
		return result

	def _start_watch(self) -> None:
		self.location.start_watch(self._recenter, self._on_watch_error)

	def _recenter(self, point: GeoPoint) -> None:
		self._surface.animate_view_to(point, None, settings.recenter_animation_ms)

	def _on_watch_error(self, error: LocationError) -> None:
		logger.info("location watch error map=%s reason=%s", self.map_id, error.reason)

	def _on_self_location(self, point: GeoPoint, source: LocationSource) -> None:
		if self._closed:
			return
		if self.config.is_privacy_enabled:
			self.pulse.restart()
		self.scheduler.request_recompute(f"location_{source.value}")

	# ------------------------------------------------------------------
	# configuration

	def _on_config_change(self, previous: TrackingConfig, current: TrackingConfig) -> None:
		if current.is_privacy_enabled != previous.is_privacy_enabled:
			self.location.set_hide_exact_location(current.is_privacy_enabled)
			self._notifier.notify(privacy_toggled(current.is_privacy_enabled))
			if current.is_privacy_enabled:
				self.pulse.restart()
			else:
				self.pulse.cancel()
		if current.is_manual_mode != previous.is_manual_mode:
			self.location.set_manual_mode(current.is_manual_mode)
			if current.is_manual_mode:
				self._notifier.notify(MANUAL_MODE_HINT)
		if current.is_tracking and not current.is_manual_mode:
			if self._started:
				self._start_watch()
		else:
			self.location.stop_watch()
		self.scheduler.request_recompute("config")

	# ------------------------------------------------------------------
	# recompute pipeline

	def _style_context(self) -> StyleContext:
		state = self.selection.state
		pending: frozenset[str] = frozenset()
		friends: frozenset[str] = frozenset()
		if self._meetups is not None:
			pending = frozenset(self._meetups.pending_outbound(self._self_actor.id))
			friends = frozenset(self._meetups.accepted_contacts(self._self_actor.id))
		return StyleContext(
			selected_id=state.selected_id,
			moving=state.moving,
			completed=state.completed,
			pending_ids=pending,
			friend_ids=friends,
		)

	def _render_markers(self, snapshot: MapSnapshot) -> None:
		config = snapshot.config
		clusters = filter_and_cluster(
			snapshot.roster,
			snapshot.self_actor,
			config.radius_km,
			self._cluster_radius_km,
		)
		self_marker = None
		location = snapshot.self_actor.location
		if config.is_tracking and not config.is_privacy_enabled and location is not None:
			self_marker = SelfMarker(actor_id=snapshot.self_actor.id, point=location)
		self.store.sync(
			clusters,
			self_marker,
			self._radius_circle(snapshot),
			self._obfuscator.privacy_circle_for(snapshot.self_actor, config.is_privacy_enabled),
			context=self._style_context(),
		)

	def _render_circles(self, snapshot: MapSnapshot) -> None:
		config = snapshot.config
		self.store.update_radius_circle(self._radius_circle(snapshot))
		self.store.update_privacy_circle(
			self._obfuscator.privacy_circle_for(snapshot.self_actor, config.is_privacy_enabled)
		)
		if self.store.privacy_circle is not None and not self.pulse.running:
			self.pulse.restart()
		elif self.store.privacy_circle is None and self.pulse.running:
			self.pulse.cancel()

	def _radius_circle(self, snapshot: MapSnapshot) -> Optional[RadiusCircle]:
		location = snapshot.self_actor.location
		if not snapshot.config.is_tracking or location is None:
			return None
		return RadiusCircle(center=location, radius_km=snapshot.config.radius_km)

	# ------------------------------------------------------------------
	# clicks and selection

	async def handle_click(self, pixel: ScreenPoint) -> SelectionView:
		if self._closed:
			return self.selection.view()
		if self.config.is_manual_mode:
			point = self._surface.unproject(pixel)
			await self.location.set_manual_location(point)
			return self.selection.view()
		hits = self._surface.hit_test(pixel, self._hit_tolerance_px)
		markers = [feature for feature in hits if not is_circle(feature)]
		if markers and isinstance(markers[0], ClusterMarker):
			self._zoom_to_cluster(markers[0])
			return self.selection.view()
		return self.selection.handle_click(hits)

	def select_actor(self, actor_id: str) -> SelectionView:
		if not self.selection.is_selectable(actor_id):
			return self.selection.view()
		return self.selection.select(actor_id)

	def _zoom_to_cluster(self, cluster: ClusterMarker) -> None:
		zoom = self._surface.view_zoom() + settings.cluster_zoom_step
		logger.debug("zoom to cluster key=%s members=%s", cluster.key, cluster.count)
		self._surface.animate_view_to(cluster.point, zoom, settings.cluster_zoom_animation_ms)

	def _has_pending_request(self, actor_id: str) -> bool:
		if self._meetups is None:
			return False
		return actor_id in self._meetups.pending_outbound(self._self_actor.id)

	def _on_selection_change(self, view: SelectionView) -> None:
		self.store.restyle(self._style_context())

	async def confirm_meeting(self, duration_minutes: int) -> bool:
		"""Send a meetup request for the selected actor and animate it on success.

		A second confirmation for an actor whose request is still in flight is
		refused without sending anything.
		"""
		target = self.selection.meeting_candidate()
		if target in self._confirming:
			logger.info("meetup request already in flight map=%s", self.map_id)
			return False
		self._confirming.add(target)
		try:
			sent = await self._send_meetup(target, duration_minutes)
		finally:
			self._confirming.discard(target)
		if not sent or self._closed:
			if not self._closed:
				self._notifier.notify(MEETUP_REQUEST_FAILED)
			return False

		try:
			self.selection.begin_meeting(target)
		except SelectionError as exc:
			logger.warning("meetup sent but meeting not started map=%s reason=%s", self.map_id, exc.reason)
			return False
		self._meeting_minutes[target] = duration_minutes
		start_point = self._start_point_for(target)
		self.animator.start(target, start_point, self._meeting_point)
		return True

	async def _send_meetup(self, target: str, duration_minutes: int) -> bool:
		if self._meetups is None:
			return False
		try:
			return await self._meetups.send(
				self._self_actor.id,
				target,
				duration_minutes,
				self._meeting_point_name,
			)
		except asyncio.CancelledError:
			raise
		except Exception:
			logger.exception("meetup request failed map=%s", self.map_id)
			return False

	def _start_point_for(self, actor_id: str) -> GeoPoint:
		marker = self.store.actor_marker(actor_id)
		if marker is not None:
			return marker.point
		for actor in self._roster:
			if actor.id == actor_id:
				point = self._obfuscator.marker_point_for(actor)
				if point is not None:
					return point
		return self._meeting_point

	def _on_meeting_done(self, actor_id: str) -> None:
		self.selection.complete_meeting(actor_id)
		minutes = self._meeting_minutes.pop(actor_id, 0)
		name = actor_id
		for actor in self._roster:
			if actor.id == actor_id:
				name = actor.label
				break
		self._notifier.notify(meeting_confirmed(name, self._meeting_point_name, minutes))


__all__ = ["ProximityMapEngine"]
