"""
NoteSync — Sync Service (protocol operations)
=============================================

What:  Fetch, update and create: the operations shared by the HTTP endpoints
       and the streaming sessions.
How:   Composes NoteStore, SubscriptionRegistry and PersistenceGateway.

Update Flow:
    ┌──────────┐   ┌───────────────────────── note lock ──┐   ┌──────────┐
    │ validate │──▶│ NoteStore.update ──▶ broadcast(excl.) │──▶│  flush   │
    │    id    │   └───────────────────────────────────────┘   │ snapshot │
    └──────────┘                                               └──────────┘

    Holding the note's lock across update and broadcast means subscribers see
    updates to one note in exactly the order the store accepted them. The
    flush runs after the lock is released so a slow disk never delays the
    next writer; the gateway's own lock keeps snapshots ordered.
"""

import logging
from typing import Any, Optional

from notesync.models.note import Note
from notesync.schemas.note import ContentUpdateMessage
from notesync.services.note_store import NoteStore
from notesync.services.persistence import PersistenceGateway
from notesync.services.subscriptions import Subscriber, SubscriptionRegistry

logger = logging.getLogger(__name__)


class SyncService:
    """Request/response and streaming entry point into the sync engine."""

    def __init__(
        self,
        store: NoteStore,
        registry: SubscriptionRegistry,
        persistence: PersistenceGateway,
    ):
        self.store = store
        self.registry = registry
        self.persistence = persistence

    def validate_id(self, note_id: Any) -> str:
        return self.store.validate_id(note_id)

    def fetch(self, note_id: str) -> Note:
        """Current state of a note; an unseen valid id yields a new empty note."""
        return self.store.get(note_id)

    def create(self) -> Note:
        note = self.store.create()
        logger.info("Note %s allocated", note.id)
        return note

    async def update(
        self,
        note_id: str,
        content: Any,
        sender: Optional[str] = None,
        origin: Optional[Subscriber] = None,
    ) -> Note:
        """
        Accept new content for a note and propagate it.

        Args:
            note_id: target note
            content: new text; anything else is rejected
            sender:  client-declared originator tag echoed to other subscribers
            origin:  the subscriber that sent the update, excluded from the
                     broadcast (None for HTTP updates)

        Returns:
            The updated Note.

        Raises:
            InvalidIdentifierError, InvalidPayloadError: nothing was changed.
        """
        note_id = self.store.validate_id(note_id)
        if sender is None and origin is not None:
            sender = origin.session_id

        async with self.store.lock(note_id):
            note = self.store.update(note_id, content)
            message = ContentUpdateMessage.from_note(note, sender=sender).to_wire()
            delivered = await self.registry.broadcast(note_id, message, exclude=origin)

        logger.info(
            "Note %s updated (%d chars) → %d subscribers",
            note_id,
            len(note.content),
            delivered,
        )

        await self.persistence.flush(self.store)
        return note
