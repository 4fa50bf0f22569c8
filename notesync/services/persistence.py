"""
NoteSync — Persistence Gateway
==============================

What:  Loads the note snapshot at startup and writes it back after updates
       and on a timer.
How:   One JSON file mapping note id → {content, lastUpdated}, rewritten
       wholesale. Writes go to a temporary file which then atomically replaces
       the snapshot, so a crash mid-write never leaves a truncated file.
       All file system calls go through aiofiles (fsync through
       asyncio.to_thread) so a slow disk never blocks the event loop.
Who:   Owned by SyncEngine; SyncService calls flush() after each update.

Failure Policy:
    Load:  missing file → empty result; corrupt file → PersistenceError (the
           engine logs it and starts empty); a bad individual entry is skipped.
    Save:  OSError is retried with tenacity (exponential backoff + jitter);
           when retries run out, flush() logs and returns False. The update
           that triggered the save is never failed by it.

Ordering:
    flush() takes the store snapshot while holding the write lock, so
    snapshots reach disk in the order they were taken and the file never
    regresses to an older state.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Mapping, Optional

import aiofiles
import aiofiles.os
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from notesync.exceptions import PersistenceError
from notesync.models.note import Note
from notesync.services.identifiers import is_valid_note_id

if TYPE_CHECKING:
    from notesync.services.note_store import NoteStore

logger = logging.getLogger(__name__)


class PersistenceGateway:
    """
    Durable key-value contract for notes, backed by a single JSON file.

    Args:
        path:            snapshot file location
        id_length:       note id length, used to drop foreign entries on load
        retry_attempts:  total write attempts before giving up
        retry_min_wait:  first backoff interval, seconds
        retry_max_wait:  backoff ceiling, seconds
    """

    def __init__(
        self,
        path: Path,
        id_length: int = 6,
        retry_attempts: int = 3,
        retry_min_wait: float = 0.2,
        retry_max_wait: float = 2.0,
    ):
        self.path = Path(path)
        self.id_length = id_length
        self.retry_attempts = retry_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self._write_lock = asyncio.Lock()
        self.last_saved_count: Optional[int] = None

    # ── Load ──────────────────────────────────────────────────────────────

    async def load(self) -> Dict[str, Note]:
        """
        Read the snapshot file.

        Returns:
            Mapping of note id to Note; empty if the file does not exist.

        Raises:
            PersistenceError: the file is unreadable, is not JSON, or its top
                              level is not an object.
        """
        if not await aiofiles.os.path.exists(self.path):
            logger.info("No snapshot at %s; starting with an empty store", self.path)
            return {}

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw_text = await f.read()
            raw = json.loads(raw_text)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(
                message="Snapshot could not be read",
                context={"path": str(self.path), "error": str(e)},
            ) from e

        if not isinstance(raw, dict):
            raise PersistenceError(
                message="Snapshot top level must be an object",
                context={"path": str(self.path), "type": type(raw).__name__},
            )

        notes: Dict[str, Note] = {}
        for note_id, entry in raw.items():
            if not is_valid_note_id(note_id, self.id_length):
                logger.warning("Skipping snapshot entry with invalid id %r", note_id)
                continue
            try:
                notes[note_id] = Note.from_dict(note_id, entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping corrupt snapshot entry %s: %s", note_id, e)

        logger.info("Loaded %d notes from %s", len(notes), self.path)
        return notes

    # ── Save ──────────────────────────────────────────────────────────────

    async def save(self, notes: Mapping[str, Note]) -> None:
        """
        Write `notes` as the new snapshot, replacing the previous one.

        Raises:
            PersistenceError: every write attempt failed.
        """
        payload = json.dumps(
            {note_id: note.to_dict() for note_id, note in notes.items()},
            ensure_ascii=False,
            indent=2,
        )

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(OSError),
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential_jitter(
                    initial=self.retry_min_wait,
                    max=self.retry_max_wait,
                    jitter=self.retry_min_wait,
                ),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=False,
            ):
                with attempt:
                    await self._write_atomic(payload)
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise PersistenceError(
                message="Snapshot could not be written",
                context={
                    "path": str(self.path),
                    "attempts": self.retry_attempts,
                    "os_error": str(cause),
                },
            ) from cause

        self.last_saved_count = len(notes)
        logger.debug("Snapshot saved: %d notes → %s", len(notes), self.path)

    async def _write_atomic(self, payload: str) -> None:
        await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
            await f.flush()
            await asyncio.to_thread(os.fsync, f.fileno())
        await aiofiles.os.replace(tmp_path, self.path)

    async def flush(self, store: "NoteStore") -> bool:
        """
        Snapshot `store` and save it, containing any failure.

        Returns:
            True if the snapshot was written, False if it was not (logged).
        """
        async with self._write_lock:
            snapshot = store.snapshot()
            try:
                await self.save(snapshot)
            except PersistenceError as e:
                logger.error("Snapshot save failed: %s | Context: %s", e.message, e.context)
                return False
        return True
