"""
NoteSync — Streaming Route
==========================

WS /ws/{id}: live channel for one note. All protocol handling lives in
NoteSession; this module only hands the socket over.
"""

from fastapi import APIRouter, Depends, WebSocket

from notesync.services.engine import SyncEngine, get_sync_engine
from notesync.services.session import NoteSession

router = APIRouter(tags=["Streaming"])


@router.websocket("/ws/{note_id}")
async def note_stream(
    websocket: WebSocket,
    note_id: str,
    engine: SyncEngine = Depends(get_sync_engine),
) -> None:
    await NoteSession(websocket, engine.sync, note_id).run()
