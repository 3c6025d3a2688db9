"""Acquisition of the local actor's position in one-shot and watch modes."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Callable, Optional

from kairo.domain.location.exceptions import LocationError, Unsupported, classify
from kairo.domain.location.models import (
    GeolocationSource,
    LocationPersistence,
    LocationResult,
    LocationSession,
    LocationSource,
    PermissionState,
    Position,
    PositionOptions,
    WatchHandle,
)
from kairo.domain.notices import DEFAULT_LOCATION_USED, MANUAL_LOCATION_SET, MANUAL_MODE_HINT, Notifier, LoggingNotifier
from kairo.domain.proximity.geo import GeoPoint
from kairo.obs import metrics as obs_metrics
from kairo.settings import settings

logger = logging.getLogger(__name__)

LocationListener = Callable[[GeoPoint, LocationSource], None]

_WATCH_IDS = itertools.count(1)


class LocationProvider:
    """Owns the live self position for one map session.

    Callers are notified through ``on_location`` whenever the known position
    changes. Persistence writes are best effort: failures are logged and never
    surface to the caller.
    """

    def __init__(
        self,
        actor_id: str,
        source: Optional[GeolocationSource],
        *,
        persistence: Optional[LocationPersistence] = None,
        notifier: Optional[Notifier] = None,
        on_location: Optional[LocationListener] = None,
        initial_point: Optional[GeoPoint] = None,
        clock: Callable[[], float] = time.monotonic,
        default_point: Optional[GeoPoint] = None,
        timeout_s: Optional[float] = None,
        min_request_interval_s: Optional[float] = None,
        min_persist_interval_s: Optional[float] = None,
    ) -> None:
        self.actor_id = actor_id
        self._source = source
        self._persistence = persistence
        self._notifier = notifier or LoggingNotifier()
        self._on_location = on_location
        self._clock = clock
        self._default_point = default_point or GeoPoint(settings.default_location_lat, settings.default_location_lng)
        self._timeout = settings.location_timeout_seconds if timeout_s is None else timeout_s
        self._min_request_interval = (
            settings.location_min_request_interval_seconds if min_request_interval_s is None else min_request_interval_s
        )
        self._min_persist_interval = (
            settings.location_min_persist_interval_seconds if min_persist_interval_s is None else min_persist_interval_s
        )
        self.options = PositionOptions(
            enable_high_accuracy=settings.location_high_accuracy,
            timeout_ms=int(self._timeout * 1000),
            maximum_age_ms=settings.location_maximum_age_ms,
        )
        self.session = LocationSession()
        self.current: Optional[GeoPoint] = initial_point
        self.current_source: Optional[LocationSource] = LocationSource.DEVICE if initial_point is not None else None
        self.last_error: Optional[LocationError] = None
        self.manual_mode = False
        self.hide_exact_location = False
        self._watch: Optional[WatchHandle] = None
        self._pending_writes: set[asyncio.Task] = set()
        self._closed = False
        self.permission = PermissionState.PROMPT
        self._unsubscribe_permission: Optional[Callable[[], None]] = None
        if source is not None:
            self.permission = source.permission_state()
            self._unsubscribe_permission = source.subscribe_permission(self._on_permission_change)

    # ------------------------------------------------------------------
    # one-shot acquisition

    async def get_once(self) -> LocationResult:
        if self._closed:
            return LocationResult(point=self.current, source=self.current_source, suppressed=True)
        if self.manual_mode:
            obs_metrics.inc_location_suppressed("manual")
            self._notifier.notify(MANUAL_MODE_HINT)
            return LocationResult(point=self.current, source=self.current_source, suppressed=True)
        if self.session.in_flight:
            obs_metrics.inc_location_suppressed("in_flight")
            logger.debug("location request already in flight actor=%s", self.actor_id)
            return LocationResult(point=self.current, source=self.current_source, suppressed=True)
        now = self._clock()
        last = self.session.last_request_at
        if last is not None and now - last < self._min_request_interval:
            obs_metrics.inc_location_suppressed("throttled")
            logger.debug("location request throttled actor=%s", self.actor_id)
            return LocationResult(point=self.current, source=self.current_source, suppressed=True)

        self.session.last_request_at = now
        self.session.in_flight = True
        self.last_error = None
        try:
            try:
                point = await self._acquire()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = classify(exc)
                self._record_error(error)
                self._apply_fallback()
                return LocationResult(point=self.current, error=error, source=self.current_source)
            obs_metrics.inc_location_fix("once")
            self._set_current(point, LocationSource.DEVICE)
            await self._persist(point)
            return LocationResult(point=point, source=LocationSource.DEVICE)
        finally:
            self.session.in_flight = False

    async def _acquire(self) -> GeoPoint:
        if self._source is None:
            raise Unsupported()
        position = await asyncio.wait_for(self._source.get_current_position(self.options), timeout=self._timeout)
        return position.to_point()

    # ------------------------------------------------------------------
    # continuous acquisition

    @property
    def watching(self) -> bool:
        return self._watch is not None

    def start_watch(
        self,
        on_update: Callable[[GeoPoint], None],
        on_error: Optional[Callable[[LocationError], None]] = None,
    ) -> Optional[WatchHandle]:
        if self._watch is not None:
            return self._watch
        if self._closed or self.manual_mode:
            return None
        if self._source is None:
            error = Unsupported()
            self._record_error(error)
            self._apply_fallback()
            if on_error is not None:
                on_error(error)
            return None

        def _handle_fix(position: Position) -> None:
            try:
                point = position.to_point()
            except ValueError as exc:
                _handle_error(exc)
                return
            obs_metrics.inc_location_fix("watch")
            self._set_current(point, LocationSource.DEVICE)
            now = self._clock()
            last = self.session.last_persist_at
            if last is None or now - last >= self._min_persist_interval:
                self.session.last_persist_at = now
                self._schedule_persist(point)
            else:
                obs_metrics.inc_location_persist("throttled")
            on_update(point)

        def _handle_error(exc: BaseException) -> None:
            error = classify(exc)
            self._record_error(error)
            self._apply_fallback()
            if on_error is not None:
                on_error(error)

        platform_handle = self._source.watch_position(_handle_fix, _handle_error, self.options)
        self._watch = WatchHandle(id=next(_WATCH_IDS), platform_handle=platform_handle)
        logger.info("location watch started actor=%s handle=%s", self.actor_id, self._watch.id)
        return self._watch

    def stop_watch(self, handle: Optional[WatchHandle] = None) -> None:
        watch = self._watch
        if watch is None:
            return
        if handle is not None and handle.id != watch.id:
            return
        self._watch = None
        if self._source is not None:
            self._source.clear_watch(watch.platform_handle)
        logger.info("location watch stopped actor=%s handle=%s", self.actor_id, watch.id)

    # ------------------------------------------------------------------
    # manual mode

    def set_manual_mode(self, enabled: bool) -> None:
        self.manual_mode = enabled
        if enabled:
            self.stop_watch()

    def set_hide_exact_location(self, enabled: bool) -> None:
        if enabled == self.hide_exact_location:
            return
        self.hide_exact_location = enabled
        if self.current is not None:
            self._schedule_persist(self.current)

    async def set_manual_location(self, point: GeoPoint) -> None:
        obs_metrics.inc_location_fix("manual")
        self._set_current(point, LocationSource.MANUAL)
        await self._persist(point)
        self._notifier.notify(MANUAL_LOCATION_SET)

    # ------------------------------------------------------------------
    # lifecycle

    def reset_session(self) -> None:
        self.session = LocationSession()

    async def close(self) -> None:
        self._closed = True
        self.stop_watch()
        if self._unsubscribe_permission is not None:
            self._unsubscribe_permission()
            self._unsubscribe_permission = None
        pending = list(self._pending_writes)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending_writes.clear()

    # ------------------------------------------------------------------
    # internals

    def _on_permission_change(self, state: PermissionState) -> None:
        if state == self.permission:
            return
        logger.info("location permission changed actor=%s state=%s", self.actor_id, state.value)
        self.permission = state

    def _record_error(self, error: LocationError) -> None:
        self.last_error = error
        obs_metrics.inc_location_error(error.reason)
        logger.warning("location error actor=%s reason=%s", self.actor_id, error.reason)

    def _apply_fallback(self) -> None:
        if self.current is not None:
            return
        self._set_current(self._default_point, LocationSource.DEFAULT)
        self._schedule_persist(self._default_point)
        if not self.session.default_notice_shown:
            self.session.default_notice_shown = True
            self._notifier.notify(DEFAULT_LOCATION_USED)

    def _set_current(self, point: GeoPoint, source: LocationSource) -> None:
        self.current = point
        self.current_source = source
        if self._on_location is not None:
            self._on_location(point, source)

    def _schedule_persist(self, point: GeoPoint) -> None:
        if self._persistence is None or self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._persist(point))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist(self, point: GeoPoint) -> None:
        if self._persistence is None:
            return
        try:
            await self._persistence.save_self_location(
                self.actor_id,
                point,
                hide_exact_location=self.hide_exact_location,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            obs_metrics.inc_location_persist("failed")
            logger.exception("failed to persist self location actor=%s", self.actor_id)
            return
        obs_metrics.inc_location_persist("ok")


__all__ = ["LocationProvider"]
