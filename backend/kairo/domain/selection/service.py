"""Selection and meeting state machine driven by map clicks."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional, Sequence

from kairo.domain.map.features import ActorMarker, MapFeature, is_circle
from kairo.domain.selection.exceptions import (
    MeetingInProgress,
    NothingSelected,
    RequestAlreadyPending,
    SelectionInvariantError,
)
from kairo.domain.selection.models import (
    CARD_FOR_PHASE,
    SelectionPhase,
    SelectionState,
    SelectionView,
)
from kairo.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

PendingLookup = Callable[[str], bool]
SelectionListener = Callable[[SelectionView], None]


def _no_pending(_actor_id: str) -> bool:
    return False


class SelectionStateMachine:
    """Tracks the selected actor and which actors are moving or have met.

    The phase is derived from the state plus the outbound request lookup, so a
    request created or withdrawn elsewhere is reflected on the next read.
    """

    def __init__(
        self,
        *,
        has_pending_request: PendingLookup = _no_pending,
        on_change: Optional[SelectionListener] = None,
    ) -> None:
        self._has_pending_request = has_pending_request
        self._on_change = on_change
        self._state = SelectionState()

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def phase(self) -> SelectionPhase:
        selected = self._state.selected_id
        if selected is None:
            return SelectionPhase.IDLE
        if selected in self._state.moving:
            return SelectionPhase.MOVING
        if selected in self._state.completed:
            return SelectionPhase.COMPLETED
        if self._has_pending_request(selected):
            return SelectionPhase.PENDING_REQUEST
        return SelectionPhase.SELECTED

    def view(self) -> SelectionView:
        phase = self.phase
        return SelectionView(phase=phase, selected_id=self._state.selected_id, card=CARD_FOR_PHASE[phase])

    def is_selectable(self, actor_id: str) -> bool:
        return actor_id not in self._state.moving and actor_id not in self._state.completed

    # ------------------------------------------------------------------
    # transitions

    def select(self, actor_id: str) -> SelectionView:
        if actor_id == self._state.selected_id:
            return self.view()
        # The newly selected id starts from a clean slate.
        self._transition(
            SelectionState(
                selected_id=actor_id,
                moving=self._state.moving - {actor_id},
                completed=self._state.completed - {actor_id},
            )
        )
        return self.view()

    def clear(self) -> SelectionView:
        if self._state.selected_id is None:
            return self.view()
        self._transition(replace(self._state, selected_id=None))
        return self.view()

    def handle_click(self, hits: Sequence[MapFeature]) -> SelectionView:
        """Apply a surface hit-test result.

        Circles count as empty space. Self, cluster, moving and completed
        markers are hits but never change the selection.
        """
        markers = [feature for feature in hits if not is_circle(feature)]
        if not markers:
            return self.clear()
        for feature in markers:
            if isinstance(feature, ActorMarker) and self.is_selectable(feature.actor_id):
                return self.select(feature.actor_id)
        return self.view()

    def meeting_candidate(self) -> str:
        """Return the selected id if a meeting can be confirmed for it."""
        selected = self._state.selected_id
        if selected is None:
            raise NothingSelected()
        phase = self.phase
        if phase is SelectionPhase.PENDING_REQUEST:
            raise RequestAlreadyPending()
        if phase is not SelectionPhase.SELECTED:
            raise MeetingInProgress()
        return selected

    def begin_meeting(self, actor_id: Optional[str] = None) -> str:
        """Move an actor into the moving set.

        Without ``actor_id`` the current selection must be confirmable. An
        explicit id (a request confirmed while the selection moved on) only has
        to be idle.
        """
        if actor_id is None:
            actor_id = self.meeting_candidate()
        elif not self.is_selectable(actor_id):
            raise MeetingInProgress()
        self._transition(replace(self._state, moving=self._state.moving | {actor_id}))
        return actor_id

    def complete_meeting(self, actor_id: str) -> None:
        if actor_id not in self._state.moving:
            return
        self._transition(
            replace(
                self._state,
                moving=self._state.moving - {actor_id},
                completed=self._state.completed | {actor_id},
            )
        )

    def reset(self) -> None:
        self._transition(SelectionState())

    # ------------------------------------------------------------------

    def _transition(self, state: SelectionState) -> None:
        if state.moving & state.completed:
            raise SelectionInvariantError()
        self._state = state
        view = self.view()
        obs_metrics.inc_selection(view.phase.value)
        logger.debug("selection phase=%s selected=%s", view.phase.value, view.selected_id)
        if self._on_change is not None:
            self._on_change(view)


__all__ = ["SelectionStateMachine"]
