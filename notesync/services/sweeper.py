"""
NoteSync — Lifecycle Sweeper
============================

What:  Evicts notes that are both stale and unsubscribed.
When:  Every `sweep_interval_seconds` (hourly by default), driven by SyncEngine.

Eviction rule, for each note:
    now - last_updated > retention   AND   no live subscribers
    AND no update currently holding the note's lock

Liveness always wins over age: a note with even one subscriber is kept no
matter how old its last update is.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from notesync.models.note import utc_now
from notesync.services.note_store import NoteStore
from notesync.services.subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


class LifecycleSweeper:
    def __init__(
        self,
        store: NoteStore,
        registry: SubscriptionRegistry,
        retention: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.registry = registry
        self.retention = retention
        self._clock = clock

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Remove eligible notes and return their ids."""
        now = now or self._clock()
        evicted: List[str] = []

        for note_id, note in self.store.all():
            if now - note.last_updated <= self.retention:
                continue
            if not self.registry.is_empty(note_id):
                continue
            if self.store.is_locked(note_id):
                continue
            self.store.remove(note_id)
            evicted.append(note_id)

        if evicted:
            logger.info("Sweep evicted %d stale notes", len(evicted))
        else:
            logger.debug("Sweep found nothing to evict")
        return evicted
