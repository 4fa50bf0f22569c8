"""
NoteSync — Health Check Route
=============================

What:  Liveness probe for Docker and load balancers.
How:   Returns 200 with status "ok" whenever the process can answer. It does
       not touch the disk: a failing snapshot write degrades durability, not
       availability, so it must not take the instance out of rotation.
"""

import time

from fastapi import APIRouter, Depends

from notesync import __version__
from notesync.schemas.note import HealthResponse
from notesync.services.engine import SyncEngine, get_sync_engine

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service liveness probe")
async def health_check(engine: SyncEngine = Depends(get_sync_engine)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        notes=len(engine.store),
        subscribers=len(engine.registry),
    )
