"""WebSocket endpoint for dashboards: room membership and device commands."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from greenlink.auth.dependencies import AuthPrincipal, authenticate_socket_token
from greenlink.auth.jwt import AuthError
from greenlink.config import get_settings
from greenlink.errors import GreenLinkError
from greenlink.realtime.rooms import RoomRegistry, Subscriber, SubscriberIdentity, room_key
from greenlink.services.dispatcher import EventDispatcher

router = APIRouter(tags=["websocket"])
logger = structlog.get_logger("greenlink.ws")


def _greenhouse_from(data: Any) -> str | None:
	if isinstance(data, str):
		return data.strip() or None
	if isinstance(data, dict):
		value = data.get("greenhouseId") or data.get("greenhouse_id")
		if value:
			return str(value).strip() or None
	return None


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
	"""Sole writer for the socket: drains the subscriber outbox in order."""
	try:
		async for frame in subscriber.frames():
			await websocket.send_json(frame)
	except (WebSocketDisconnect, RuntimeError) as exc:
		logger.debug("ws_writer_stopped", subscriber=subscriber.id, error=str(exc))


async def _run_command(
	dispatcher: EventDispatcher,
	subscriber: Subscriber,
	room_hint: str | None,
	data: Any,
) -> None:
	try:
		ack = await dispatcher.handle_command(subscriber, room_hint, data)
	except GreenLinkError as exc:
		subscriber.deliver("commandError", exc.to_payload())
		return
	except Exception:
		logger.exception("ws_command_crashed", subscriber=subscriber.id)
		subscriber.deliver("commandError", {"error": "internal", "message": "Unexpected server failure"})
		return
	subscriber.deliver("commandAck", ack.to_wire())


@router.websocket("/ws")
async def ws_events(websocket: WebSocket) -> None:
	await websocket.accept()
	try:
		principal: AuthPrincipal = authenticate_socket_token(websocket.query_params.get("token"))
	except AuthError as exc:
		await websocket.send_json({"event": "error", "data": {"error": exc.code, "message": exc.detail}})
		await websocket.close(code=1008)
		return

	registry: RoomRegistry = websocket.app.state.registry
	dispatcher: EventDispatcher = websocket.app.state.dispatcher
	subscriber = Subscriber(
		SubscriberIdentity(principal.user_id, principal.username, principal.role.value),
		queue_size=get_settings().subscriber_queue_size,
	)
	writer = asyncio.create_task(_pump(websocket, subscriber))
	in_flight: set[asyncio.Task[None]] = set()
	current_greenhouse: str | None = None
	logger.info("ws_connected", subscriber=subscriber.id, user_id=principal.user_id)

	try:
		while True:
			raw = await websocket.receive_text()
			try:
				message = json.loads(raw)
			except json.JSONDecodeError:
				subscriber.deliver("error", {"error": "bad_request", "message": "Frames must be JSON"})
				continue
			if not isinstance(message, dict):
				subscriber.deliver("error", {"error": "bad_request", "message": "Frames must be objects"})
				continue

			event = message.get("event")
			data = message.get("data")
			if event == "join-greenhouse":
				greenhouse_id = _greenhouse_from(data)
				if greenhouse_id is None:
					subscriber.deliver("error", {"error": "bad_request", "message": "greenhouseId is required"})
					continue
				room = room_key(greenhouse_id)
				registry.join(room, subscriber)
				current_greenhouse = greenhouse_id
				subscriber.deliver("greenhouse-joined", {"greenhouseId": greenhouse_id, "room": room})
			elif event == "leave-greenhouse":
				greenhouse_id = _greenhouse_from(data) or current_greenhouse
				if greenhouse_id is not None:
					registry.leave(room_key(greenhouse_id), subscriber)
					if greenhouse_id == current_greenhouse:
						current_greenhouse = None
					subscriber.deliver("greenhouse-left", {"greenhouseId": greenhouse_id})
			elif event == "device-control":
				task = asyncio.create_task(_run_command(dispatcher, subscriber, current_greenhouse, data))
				in_flight.add(task)
				task.add_done_callback(in_flight.discard)
			else:
				subscriber.deliver("error", {"error": "unknown_event", "message": f"Unknown event: {event!r}"})
	except WebSocketDisconnect:
		pass
	finally:
		rooms = registry.leave_all(subscriber)
		subscriber.close()
		pending = [*in_flight, writer]
		for task in pending:
			task.cancel()
		await asyncio.gather(*pending, return_exceptions=True)
		logger.info("ws_disconnected", subscriber=subscriber.id, rooms=rooms, in_flight=len(pending) - 1)
