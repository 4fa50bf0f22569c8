"""
NoteSync — Subscription Registry
================================

What:  Tracks, per note, the set of live subscribers and fans messages out
       to them.
How:   dict of note id → set of Subscriber. A Subscriber wraps the transport's
       async `send` callable (WebSocket.send_json in production, a list append
       in tests) and serializes its own sends with a lock, so a broadcast and a
       direct reply to the same connection never interleave.

Delivery Contract (best effort):
    - A subscriber already marked closed is skipped.
    - A send that raises, or does not finish within `send_timeout`, marks the
      subscriber closed; the failure is logged as a DeliveryError and the
      broadcast continues with the others.
    - Sends run concurrently, so one broadcast takes at most `send_timeout`
      however many peers have stopped reading.
    - broadcast() never raises because of a subscriber's channel.

Cleanup:
    Sessions call leave() from a `finally` block, so every disconnect path
    removes its entry. Empty note entries are dropped, which is what lets the
    sweeper see a note as unsubscribed.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from notesync.exceptions import DeliveryError

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
SendCallable = Callable[[Message], Awaitable[None]]


class Subscriber:
    """
    One live connection receiving updates for one note.

    Identity is the object itself; `session_id` is a unique tag included as
    the `sender` of updates the connection originates.
    """

    def __init__(self, send: SendCallable, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex
        self._send = send
        self._send_lock = asyncio.Lock()
        self.is_open = True

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Subscriber {self.session_id[:8]} {state}>"

    def close(self) -> None:
        self.is_open = False

    async def deliver(self, message: Message, timeout: Optional[float] = None) -> None:
        """
        Send one message, waiting at most `timeout` seconds (None: no limit).

        The wait covers both the send lock and the transport send, so a peer
        that stops reading cannot hold the caller longer than `timeout`.

        Raises:
            DeliveryError: the subscriber is closed, the send failed or it
                           timed out. The subscriber is closed in every case.
        """
        if not self.is_open:
            raise DeliveryError(context={"session_id": self.session_id})
        try:
            await asyncio.wait_for(self._locked_send(message), timeout)
        except asyncio.TimeoutError as e:
            self.is_open = False
            raise DeliveryError(
                message="Subscriber did not accept the message in time",
                context={"session_id": self.session_id, "timeout": timeout},
            ) from e
        except Exception as e:
            # Any transport failure means this channel is finished
            self.is_open = False
            raise DeliveryError(
                message="Subscriber channel is no longer writable",
                context={"session_id": self.session_id, "error": type(e).__name__},
            ) from e

    async def _locked_send(self, message: Message) -> None:
        async with self._send_lock:
            await self._send(message)


class SubscriptionRegistry:
    """
    Per-note sets of live subscribers.

    Args:
        send_timeout: seconds a broadcast waits on any one subscriber before
                      closing it; None waits indefinitely
    """

    def __init__(self, send_timeout: Optional[float] = 5.0) -> None:
        self.send_timeout = send_timeout
        self._subscribers: Dict[str, Set[Subscriber]] = {}

    def __len__(self) -> int:
        """Total number of registered subscribers across all notes."""
        return sum(len(subs) for subs in self._subscribers.values())

    def join(self, note_id: str, subscriber: Subscriber) -> None:
        self._subscribers.setdefault(note_id, set()).add(subscriber)
        logger.debug("Subscriber %s joined %s", subscriber.session_id[:8], note_id)

    def leave(self, note_id: str, subscriber: Subscriber) -> None:
        subs = self._subscribers.get(note_id)
        if not subs:
            return
        subs.discard(subscriber)
        if not subs:
            del self._subscribers[note_id]
        logger.debug("Subscriber %s left %s", subscriber.session_id[:8], note_id)

    def is_empty(self, note_id: str) -> bool:
        return not self._subscribers.get(note_id)

    def subscribers(self, note_id: str) -> List[Subscriber]:
        return list(self._subscribers.get(note_id, ()))

    @property
    def active_notes(self) -> int:
        return len(self._subscribers)

    async def broadcast(
        self,
        note_id: str,
        message: Message,
        exclude: Optional[Subscriber] = None,
    ) -> int:
        """
        Deliver `message` to every open subscriber of `note_id` except `exclude`.

        Returns:
            Number of subscribers the message was delivered to.
        """
        targets = [
            sub for sub in self.subscribers(note_id)
            if sub is not exclude and sub.is_open
        ]
        if not targets:
            return 0

        results = await asyncio.gather(*(self._deliver_quietly(sub, message) for sub in targets))
        delivered = sum(1 for ok in results if ok)

        logger.debug(
            "Broadcast %s to %d/%d subscribers of %s",
            message.get("type"),
            delivered,
            len(targets),
            note_id,
        )
        return delivered

    async def _deliver_quietly(self, subscriber: Subscriber, message: Message) -> bool:
        try:
            await subscriber.deliver(message, timeout=self.send_timeout)
        except DeliveryError as e:
            logger.debug("Skipping subscriber: %s | Context: %s", e.message, e.context)
            return False
        return True
