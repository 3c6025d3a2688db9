"""Shared Redis handle for the roster and location collaborators.

`redis_client` is a single proxy object; the client behind it is swapped with
`set_redis_client` (fakeredis in tests) so module-level imports stay valid.
GEO calls are normalised here so callers can pass ``{member: (lon, lat)}`` and
never see members whose presence hash has already expired.
"""

from __future__ import annotations

from typing import Any, List, Tuple, Union

import redis.asyncio as redis

from kairo.settings import settings

GeoHit = Union[str, Tuple[str, float]]


class RedisProxy:
	"""Forwards to the current client, with GEO helpers for presence data."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def geoadd(self, name: str, values: Any, nx: bool = False, xx: bool = False, ch: bool = False):
		if isinstance(values, dict):
			triplets: list = []
			for member, (lng, lat) in values.items():
				triplets.extend([lng, lat, member])
			values = triplets
		return await self._client.geoadd(name, values, nx=nx, xx=xx, ch=ch)  # type: ignore[arg-type]

	async def geosearch(self, name: str, **kwargs: Any) -> List[GeoHit]:
		"""GEOSEARCH restricted to members that still have a ``presence:*`` hash."""
		results = await self._client.geosearch(name, **kwargs)
		live: List[GeoHit] = []
		for entry in results or ():
			with_distance = isinstance(entry, (list, tuple)) and len(entry) == 2
			member = str(entry[0]) if with_distance else str(entry)
			if not await self._client.exists(f"presence:{member}"):
				continue
			live.append((member, entry[1]) if with_distance else member)
		return live

	def __getattr__(self, item):
		return getattr(self._client, item)


redis_client: RedisProxy = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


__all__ = ["RedisProxy", "redis_client", "set_redis_client"]
