"""Socket.IO client namespace receiving pushed roster snapshots."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

import socketio

from kairo.domain.proximity.models import ActorPresence
from kairo.domain.proximity.schemas import parse_roster

logger = logging.getLogger(__name__)

ROSTER_EVENT = "presence_roster"


class PresenceFeedNamespace(socketio.AsyncClientNamespace):
	"""Forwards `presence_roster` pushes on /presence to the map engine.

	A dropped connection keeps the last roster on screen; the socket client
	handles reconnects.
	"""

	def __init__(
		self,
		on_roster: Callable[[List[ActorPresence]], None],
		*,
		on_disconnected: Optional[Callable[[], None]] = None,
		namespace: str = "/presence",
	) -> None:
		super().__init__(namespace)
		self._on_roster = on_roster
		self._on_disconnected = on_disconnected
		self.connected = False
		self.snapshots = 0

	async def on_connect(self) -> None:
		self.connected = True
		logger.info("presence feed connected namespace=%s", self.namespace)

	async def on_disconnect(self, *args) -> None:
		self.connected = False
		logger.warning("presence feed disconnected namespace=%s", self.namespace)
		if self._on_disconnected is not None:
			self._on_disconnected()

	async def on_presence_roster(self, data: dict) -> None:
		if not isinstance(data, dict) or not isinstance(data.get("users"), list):
			logger.warning("presence feed ignored malformed payload")
			return
		roster = parse_roster(data["users"])
		self.snapshots += 1
		self._on_roster(roster)


async def connect_presence_feed(
	url: str,
	namespace: PresenceFeedNamespace,
	*,
	auth: Optional[dict] = None,
) -> socketio.AsyncClient:
	client = socketio.AsyncClient(reconnection=True)
	client.register_namespace(namespace)
	await client.connect(url, namespaces=[namespace.namespace], auth=auth)
	return client


__all__ = ["ROSTER_EVENT", "PresenceFeedNamespace", "connect_presence_feed"]
