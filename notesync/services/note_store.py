"""
NoteSync — Note Store
=====================

What:  In-memory mapping from note id to Note; the single source of truth
       while the process runs.
How:   Plain dict of frozen Note objects. Every method is synchronous, so on
       the asyncio event loop each call is atomic with respect to other
       coroutines. Callers that need several steps to happen without
       interleaving (update + broadcast) hold the per-note lock from `lock()`.
Who:   Owned by SyncEngine; read and mutated by SyncService, copied by
       PersistenceGateway, pruned by LifecycleSweeper.

Lifecycle of a note:
    unseen id ── get()/update()/create() ──▶ present ── remove() ──▶ absent
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from notesync.exceptions import InvalidPayloadError, NoteSyncError
from notesync.models.note import Note, utc_now
from notesync.services.identifiers import generate_note_id, validate_note_id

logger = logging.getLogger(__name__)

# Smallest step used when the clock has not moved since the last update
_TICK = timedelta(microseconds=1)


class NoteStore:
    """
    In-memory note authority.

    Invariants:
        - Only syntactically valid ids are ever stored.
        - `update()` is the sole mutation path for existing notes.
        - `last_updated` strictly increases across updates of the same id.
    """

    def __init__(
        self,
        id_length: int = 6,
        max_content_length: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.id_length = id_length
        self.max_content_length = max_content_length
        self._clock = clock
        self._notes: Dict[str, Note] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._notes)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._notes

    def validate_id(self, note_id: Any) -> str:
        return validate_note_id(note_id, self.id_length)

    def get(self, note_id: str) -> Note:
        """Return the note, creating an empty one for an unseen valid id."""
        note_id = self.validate_id(note_id)
        note = self._notes.get(note_id)
        if note is None:
            note = Note(id=note_id, content="", last_updated=self._clock())
            self._notes[note_id] = note
            logger.debug("Note %s created", note_id)
        return note

    def update(self, note_id: str, content: Any) -> Note:
        """
        Replace a note's content and stamp it.

        Raises:
            InvalidIdentifierError: id fails the format check
            InvalidPayloadError:    content is not a string or is too long
        """
        note_id = self.validate_id(note_id)
        if not isinstance(content, str):
            raise InvalidPayloadError(
                context={"note_id": note_id, "content_type": type(content).__name__},
            )
        if self.max_content_length is not None and len(content) > self.max_content_length:
            raise InvalidPayloadError(
                message=f"Content exceeds the maximum of {self.max_content_length} characters",
                context={"note_id": note_id, "length": len(content)},
            )

        now = self._clock()
        previous = self._notes.get(note_id)
        if previous is not None and now <= previous.last_updated:
            now = previous.last_updated + _TICK

        note = Note(id=note_id, content=content, last_updated=now)
        self._notes[note_id] = note
        return note

    def create(self, max_attempts: int = 32) -> Note:
        """Create an empty note under a freshly generated, unused id."""
        for _ in range(max_attempts):
            candidate = generate_note_id(self.id_length)
            if candidate not in self._notes:
                return self.get(candidate)
        raise NoteSyncError(
            message="Could not allocate a new note id. Please try again.",
            context={"attempts": max_attempts, "notes": len(self._notes)},
        )

    def remove(self, note_id: str) -> None:
        self._notes.pop(note_id, None)
        self._locks.pop(note_id, None)

    def all(self) -> List[Tuple[str, Note]]:
        """Point-in-time list of (id, note) pairs; order is unspecified."""
        return list(self._notes.items())

    def snapshot(self) -> Dict[str, Note]:
        # Notes are frozen, so a shallow copy is a consistent snapshot
        return dict(self._notes)

    def load(self, notes: Mapping[str, Note]) -> None:
        """Replace the whole store, e.g. with the snapshot read at startup."""
        self._notes = {}
        for note_id, note in notes.items():
            self._notes[self.validate_id(note_id)] = note

    def lock(self, note_id: str) -> asyncio.Lock:
        """Per-note serialization point. Callers must pass a validated id."""
        lock = self._locks.get(note_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[note_id] = lock
        return lock

    def is_locked(self, note_id: str) -> bool:
        lock = self._locks.get(note_id)
        return lock is not None and lock.locked()
