"""
Realtime notification channels.

Clients hold one websocket each and join a named channel
(``user:<email>`` or ``barber:<display name>``). The booking workflow
publishes events to a channel and every connection joined to it at that
moment receives ``{"event": ..., "data": ...}``. Nothing is queued for
clients that are not connected.
"""
import json
import logging
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError

from schemas import JoinRequest
from security import barber_channel, read_channel_grant, user_channel

logger = logging.getLogger(__name__)

NEW_APPOINTMENT = "new_appointment"
APPOINTMENT_STATUS_CHANGED = "appointment_status_changed"


class ChannelHub:
    """Channel membership table.

    Only touched from the event loop, so each join, publish and disconnect
    runs without interleaving. A membership may be limited to a set of
    appointment ids; such a member only receives events about those.
    """

    def __init__(self):
        self._channels: Dict[str, Set[Any]] = {}
        self._memberships: Dict[Any, Set[str]] = {}
        self._scopes: Dict[Tuple[Any, str], Optional[Set[str]]] = {}

    def join(self, connection: Any, channel: str, appointment_ids: Optional[Iterable[str]] = None) -> None:
        self._channels.setdefault(channel, set()).add(connection)
        self._memberships.setdefault(connection, set()).add(channel)

        key = (connection, channel)
        if appointment_ids is None:
            self._scopes[key] = None
        elif key not in self._scopes:
            self._scopes[key] = set(appointment_ids)
        elif self._scopes[key] is not None:
            self._scopes[key].update(appointment_ids)
        logger.info(f"Connection joined {channel}")

    def disconnect(self, connection: Any) -> None:
        for channel in self._memberships.pop(connection, set()):
            self._scopes.pop((connection, channel), None)
            members = self._channels.get(channel)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._channels[channel]

    def member_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def channels_of(self, connection: Any) -> Set[str]:
        return set(self._memberships.get(connection, ()))

    def _receives(self, connection: Any, channel: str, appointment_id: Optional[str]) -> bool:
        scope = self._scopes.get((connection, channel))
        return scope is None or appointment_id in scope

    async def publish(self, channel: str, event: str, payload: Any, appointment_id: Optional[str] = None) -> int:
        """Send an event to the members of a channel entitled to it. Returns the number of deliveries."""
        message = {"event": event, "data": jsonable_encoder(payload)}
        delivered = 0
        for connection in list(self._channels.get(channel, ())):
            if not self._receives(connection, channel, appointment_id):
                continue
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping connection from {channel} after failed send: {e}")
                self.disconnect(connection)
        logger.info(f"Published {event} to {channel} ({delivered} delivered)")
        return delivered


def channel_for(request: JoinRequest) -> str:
    if request.type == "user":
        return user_channel(request.email)
    return barber_channel(request.name)


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "data": {"error": message}})


async def handle_message(websocket: WebSocket, hub: ChannelHub, raw: str, auth_required: bool) -> None:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(websocket, "Messages must be JSON")
        return
    if not isinstance(message, dict) or message.get("event") != "join":
        await _send_error(websocket, "Unknown event")
        return

    try:
        request = JoinRequest.model_validate(message.get("data") or {})
    except PydanticValidationError as e:
        await _send_error(websocket, e.errors()[0].get("msg", "Invalid join request"))
        return

    channel = channel_for(request)
    appointment_ids = None
    if auth_required:
        grant = read_channel_grant(request.token, channel)
        if grant is None:
            logger.warning(f"Refused join to {channel}: missing or invalid token")
            await _send_error(websocket, "Not allowed to join this channel")
            return
        # Customer tokens name the bookings they may follow; barber tokens cover the channel
        appointment_ids = grant.get("appointments")

    hub.join(websocket, channel, appointment_ids)
    await websocket.send_json({"event": "joined", "data": {"channel": channel}})


async def serve_channel_socket(websocket: WebSocket, hub: ChannelHub, auth_required: bool) -> None:
    await websocket.accept()
    logger.info("A client connected")
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await _send_error(websocket, "Messages must be JSON text frames")
                continue
            await handle_message(websocket, hub, raw, auth_required)
    except WebSocketDisconnect:
        logger.info("A client disconnected")
    finally:
        hub.disconnect(websocket)
