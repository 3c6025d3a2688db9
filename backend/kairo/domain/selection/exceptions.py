"""Selection state machine errors."""

from __future__ import annotations


class SelectionError(Exception):
    reason: str = "selection_error"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class NothingSelected(SelectionError):
    reason = "nothing_selected"


class RequestAlreadyPending(SelectionError):
    reason = "request_already_pending"


class MeetingInProgress(SelectionError):
    reason = "meeting_in_progress"


class SelectionInvariantError(SelectionError):
    """An actor ended up both moving and completed."""

    reason = "moving_completed_overlap"


__all__ = [
    "SelectionError",
    "NothingSelected",
    "RequestAlreadyPending",
    "MeetingInProgress",
    "SelectionInvariantError",
]
