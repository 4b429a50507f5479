"""In-memory room registry for live dashboard and actuator connections.

A room is the set of subscribers interested in one greenhouse, keyed
``greenhouse-<id>``.  Membership lives only in this process and is rebuilt
as clients reconnect and re-join.

Delivery model:

* ``broadcast`` snapshots the room and enqueues onto every member's outbox
  in a single synchronous pass, so two broadcasts to the same room reach
  every member in the order they were issued.
* Outboxes are bounded.  A full or closed outbox drops the frame; the
  broadcaster is never blocked and never sees the failure.
* A writer task per connection drains its outbox onto the socket.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger("greenlink.rooms")

ROOM_PREFIX = "greenhouse-"

_subscriber_ids = itertools.count(1)


def room_key(greenhouse_id: str) -> str:
	"""Room name shared with the firmware and the dashboard (plain concatenation)."""
	return ROOM_PREFIX + greenhouse_id


@dataclass(frozen=True, slots=True)
class SubscriberIdentity:
	user_id: str
	username: str
	role: str


class Subscriber:
	"""Handle for one live connection."""

	def __init__(self, identity: SubscriberIdentity, *, queue_size: int = 256):
		self.id = f"sub-{next(_subscriber_ids)}"
		self.identity = identity
		self._outbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=queue_size)
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	def deliver(self, event: str, payload: Any) -> bool:
		"""Enqueue one frame without waiting. Returns False if it was dropped."""
		if self._closed:
			return False
		try:
			self._outbox.put_nowait({"event": event, "data": payload})
		except asyncio.QueueFull:
			return False
		return True

	def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		try:
			self._outbox.put_nowait(None)
		except asyncio.QueueFull:
			# Writer is behind; dropping one frame to make room for the sentinel.
			self._outbox.get_nowait()
			self._outbox.put_nowait(None)

	async def frames(self) -> AsyncIterator[dict[str, Any]]:
		while True:
			frame = await self._outbox.get()
			if frame is None:
				return
			yield frame

	def pending(self) -> list[dict[str, Any]]:
		"""Drain queued frames without waiting (used by tests and diagnostics)."""
		drained: list[dict[str, Any]] = []
		while not self._outbox.empty():
			frame = self._outbox.get_nowait()
			if frame is not None:
				drained.append(frame)
		return drained

	def __repr__(self) -> str:
		return f"<Subscriber {self.id} user={self.identity.username!r}>"


@dataclass
class RoomRegistry:
	"""Room name → live subscribers.

	All mutating methods are synchronous and never await, which makes each
	of them atomic with respect to other tasks on the event loop.
	"""

	_rooms: dict[str, dict[str, Subscriber]] = field(default_factory=dict)
	_memberships: dict[str, set[str]] = field(default_factory=dict)

	def join(self, room: str, subscriber: Subscriber) -> None:
		members = self._rooms.setdefault(room, {})
		members[subscriber.id] = subscriber
		self._memberships.setdefault(subscriber.id, set()).add(room)
		logger.info("room_joined", room=room, subscriber=subscriber.id, members=len(members))

	def leave(self, room: str, subscriber: Subscriber) -> bool:
		members = self._rooms.get(room)
		if members is None or members.pop(subscriber.id, None) is None:
			return False
		if not members:
			del self._rooms[room]
		joined = self._memberships.get(subscriber.id)
		if joined is not None:
			joined.discard(room)
			if not joined:
				del self._memberships[subscriber.id]
		logger.info("room_left", room=room, subscriber=subscriber.id)
		return True

	def leave_all(self, subscriber: Subscriber) -> list[str]:
		rooms = sorted(self._memberships.get(subscriber.id, ()))
		for room in rooms:
			self.leave(room, subscriber)
		return rooms

	def broadcast(
		self,
		room: str,
		event: str,
		payload: Any,
		*,
		exclude: Subscriber | Iterable[Subscriber] | None = None,
	) -> int:
		"""Deliver to every current member of ``room``; returns frames enqueued."""
		members = self._rooms.get(room)
		if not members:
			return 0
		excluded = _excluded_ids(exclude)
		delivered = 0
		for subscriber in list(members.values()):
			if subscriber.id in excluded:
				continue
			if subscriber.deliver(event, payload):
				delivered += 1
			else:
				logger.debug("broadcast_dropped", room=room, subscriber=subscriber.id, event_name=event)
		return delivered

	def members(self, room: str) -> list[Subscriber]:
		return list(self._rooms.get(room, {}).values())

	def rooms(self) -> list[str]:
		return sorted(self._rooms)

	def rooms_of(self, subscriber: Subscriber) -> list[str]:
		return sorted(self._memberships.get(subscriber.id, ()))


def _excluded_ids(exclude: Subscriber | Iterable[Subscriber] | None) -> set[str]:
	if exclude is None:
		return set()
	if isinstance(exclude, Subscriber):
		return {exclude.id}
	return {subscriber.id for subscriber in exclude}
