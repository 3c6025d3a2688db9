"""Domain-level exceptions for roster handling."""

from __future__ import annotations


class ProximityError(Exception):
	"""Base class for proximity pipeline errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class RosterFetchFailed(ProximityError):
	"""Transient roster failure; retried by the roster collaborator, not the engine."""

	reason = "roster_fetch_failed"


class InvalidActorRecord(ProximityError):
	reason = "invalid_actor_record"
