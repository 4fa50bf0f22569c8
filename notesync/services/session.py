"""
NoteSync — Streaming Session
============================

What:  Per-connection state machine for the WebSocket channel.
How:   An explicit receive loop; every exit path goes through `finally`,
       which closes the subscriber and removes it from the registry.

States:
    CONNECTING ──▶ VALIDATING_ID ──▶ JOINED ──▶ CLOSED
                         │                         ▲
                         └──── invalid id ─────────┘

    VALIDATING_ID fails closed: the client gets an `error` message and the
    socket is closed with 1008 (policy violation) and the reason. No note is
    created for the rejected id.

Inbound messages while JOINED:
    {"type": "content_update", "content": str, "sender"?: str}
    {"type": "get_content"}
    {"type": "ping"}
    Anything else is a MalformedMessageError: logged and ignored.
"""

import enum
import json
import logging
from typing import Any, Dict, Optional

from starlette.websockets import WebSocket, WebSocketDisconnect

from notesync.exceptions import (
    DeliveryError,
    InvalidIdentifierError,
    InvalidPayloadError,
    MalformedMessageError,
)
from notesync.schemas.note import ErrorMessage, InitialContentMessage, PongMessage
from notesync.services.subscriptions import Subscriber
from notesync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

# RFC 6455 close code for "policy violation"
CLOSE_INVALID_ID = 1008


class SessionState(str, enum.Enum):
    CONNECTING = "connecting"
    VALIDATING_ID = "validating_id"
    JOINED = "joined"
    CLOSED = "closed"


class NoteSession:
    """One streaming connection attached to one note."""

    def __init__(self, websocket: WebSocket, service: SyncService, note_id: str):
        self.websocket = websocket
        self.service = service
        self.raw_note_id = note_id
        self.note_id: Optional[str] = None
        self.subscriber: Optional[Subscriber] = None
        self.state = SessionState.CONNECTING

    async def run(self) -> None:
        await self.websocket.accept()

        self.state = SessionState.VALIDATING_ID
        try:
            self.note_id = self.service.validate_id(self.raw_note_id)
        except InvalidIdentifierError as e:
            await self._reject(e)
            return

        registry = self.service.registry
        note = self.service.fetch(self.note_id)
        self.subscriber = Subscriber(self.websocket.send_json)
        registry.join(self.note_id, self.subscriber)
        self.state = SessionState.JOINED
        logger.info("Session %s joined note %s", self.subscriber.session_id[:8], self.note_id)

        try:
            await self.subscriber.deliver(InitialContentMessage.from_note(note).to_wire())
            await self._receive_loop()
        except (WebSocketDisconnect, DeliveryError):
            pass
        except Exception as e:
            logger.exception("Session error on note %s: %s", self.note_id, e)
        finally:
            self.subscriber.close()
            registry.leave(self.note_id, self.subscriber)
            self.state = SessionState.CLOSED
            logger.info("Session %s left note %s", self.subscriber.session_id[:8], self.note_id)

    async def _reject(self, error: InvalidIdentifierError) -> None:
        logger.warning("Rejecting stream for invalid note id %r", self.raw_note_id)
        try:
            await self.websocket.send_json(
                ErrorMessage(error=error.error_code, message=error.message).to_wire()
            )
            await self.websocket.close(code=CLOSE_INVALID_ID, reason=error.message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug("Client gone before rejection completed: %s", e)
        finally:
            self.state = SessionState.CLOSED

    async def _receive_loop(self) -> None:
        while True:
            frame = await self.websocket.receive()
            if frame["type"] == "websocket.disconnect":
                return
            raw = frame.get("text")
            if raw is None:
                raw = (frame.get("bytes") or b"").decode("utf-8", errors="replace")
            if not raw:
                continue

            try:
                await self._handle(self._parse(raw))
            except MalformedMessageError as e:
                logger.warning("Ignoring message on note %s: %s", self.note_id, e.message)
            except InvalidPayloadError as e:
                await self.subscriber.deliver(
                    ErrorMessage(error=e.error_code, message=e.message).to_wire()
                )

    @staticmethod
    def _parse(raw: str) -> Dict[str, Any]:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedMessageError(context={"error": str(e)}) from e
        if not isinstance(data, dict):
            raise MalformedMessageError(
                message="Message must be a JSON object",
                context={"type": type(data).__name__},
            )
        return data

    async def _handle(self, data: Dict[str, Any]) -> None:
        message_type = data.get("type")

        if message_type == "content_update":
            if "content" not in data:
                raise InvalidPayloadError(message="Field 'content' is required")
            sender = data.get("sender")
            await self.service.update(
                self.note_id,
                data["content"],
                sender=sender if isinstance(sender, str) else None,
                origin=self.subscriber,
            )
        elif message_type == "get_content":
            note = self.service.fetch(self.note_id)
            await self.subscriber.deliver(InitialContentMessage.from_note(note).to_wire())
        elif message_type == "ping":
            await self.subscriber.deliver(PongMessage().to_wire())
        else:
            raise MalformedMessageError(
                message=f"Unknown message type: {message_type!r}",
                context={"type": message_type},
            )
