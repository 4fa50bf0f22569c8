"""
NoteSync — Sync Engine
======================

What:  Owns every stateful component for one application instance.
Why:   Store, registry and timers share one lifecycle. Keeping them on an
       object (held in `app.state.engine`) rather than in module globals
       lets each test build an isolated engine.

Lifecycle:
    __init__   wire NoteStore, SubscriptionRegistry, PersistenceGateway,
               SyncService and LifecycleSweeper from Settings
    start()    load the snapshot (corrupt → log, start empty), start the
               periodic flush and sweep tasks
    stop()     cancel the tasks, write a final snapshot
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional

from starlette.requests import HTTPConnection

from notesync.config import Settings
from notesync.exceptions import PersistenceError
from notesync.services.note_store import NoteStore
from notesync.services.persistence import PersistenceGateway
from notesync.services.subscriptions import SubscriptionRegistry
from notesync.services.sweeper import LifecycleSweeper
from notesync.services.sync_service import SyncService

logger = logging.getLogger(__name__)


class SyncEngine:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.store = NoteStore(
            id_length=settings.note_id_length,
            max_content_length=settings.max_content_length,
        )
        self.registry = SubscriptionRegistry(send_timeout=settings.send_timeout_seconds)
        self.persistence = PersistenceGateway(
            settings.snapshot_path,
            id_length=settings.note_id_length,
            retry_attempts=settings.save_retry_attempts,
            retry_min_wait=settings.save_retry_min_wait,
            retry_max_wait=settings.save_retry_max_wait,
        )
        self.sync = SyncService(self.store, self.registry, self.persistence)
        self.sweeper = LifecycleSweeper(
            self.store,
            self.registry,
            retention=timedelta(days=settings.retention_days),
        )
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        try:
            notes = await self.persistence.load()
        except PersistenceError as e:
            logger.error(
                "Snapshot unusable, starting with no notes: %s | Context: %s",
                e.message,
                e.context,
            )
            notes = {}
        self.store.load(notes)

        self._tasks = [
            asyncio.create_task(
                self._every(self.settings.persist_interval_seconds, self._periodic_flush),
                name="notesync-flush",
            ),
            asyncio.create_task(
                self._every(self.settings.sweep_interval_seconds, self._periodic_sweep),
                name="notesync-sweep",
            ),
        ]
        logger.info("Sync engine started with %d notes", len(self.store))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        if await self.persistence.flush(self.store):
            logger.info("Final snapshot saved (%d notes)", len(self.store))

    async def _every(self, interval: float, action: Callable[[], Awaitable[None]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await action()
            except Exception:
                # A failed cycle must not end the timer
                logger.exception("Periodic task %s failed", action.__name__)

    async def _periodic_flush(self) -> None:
        await self.persistence.flush(self.store)

    async def _periodic_sweep(self) -> None:
        evicted = self.sweeper.sweep()
        if evicted:
            await self.persistence.flush(self.store)


def get_sync_engine(connection: HTTPConnection) -> SyncEngine:
    """FastAPI dependency: the engine of the application serving this request."""
    engine: Optional[SyncEngine] = getattr(connection.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("SyncEngine is not attached to the application")
    return engine
