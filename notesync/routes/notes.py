"""
NoteSync — Note Route Handlers
==============================

What:  Request/response access to notes.
    GET  /api/note/{id}   current content and lastUpdated
    POST /api/note/{id}   replace content, broadcast, persist
    POST /api/notes       allocate a fresh note id

Routes are thin: id and payload errors are raised as NoteSync exceptions and
rendered by the global handlers in main.py as 400 responses.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from notesync.exceptions import InvalidPayloadError
from notesync.schemas.note import (
    ErrorResponse,
    NoteCreatedResponse,
    NoteResponse,
    UpdateResponse,
)
from notesync.services.engine import SyncEngine, get_sync_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])


async def _read_update_body(request: Request) -> dict:
    """Parse the POST body by hand so malformed input gets our error envelope."""
    body = await request.body()
    try:
        payload: Any = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError(
            message="Request body must be a JSON object",
            context={"error": str(e)},
        ) from e
    if not isinstance(payload, dict):
        raise InvalidPayloadError(message="Request body must be a JSON object")
    if "content" not in payload:
        raise InvalidPayloadError(message="Field 'content' is required")
    return payload


@router.get(
    "/note/{note_id}",
    response_model=NoteResponse,
    responses={400: {"description": "Malformed note id", "model": ErrorResponse}},
    summary="Fetch a note",
    description="Returns the note's content and last update time. Unseen ids start empty.",
)
async def get_note(
    note_id: str,
    response: Response,
    engine: SyncEngine = Depends(get_sync_engine),
) -> NoteResponse:
    note = engine.sync.fetch(note_id)
    # Content changes at any moment; never serve it from a cache
    response.headers["Cache-Control"] = "no-store"
    return NoteResponse.from_note(note)


@router.post(
    "/note/{note_id}",
    response_model=UpdateResponse,
    responses={400: {"description": "Malformed id or content", "model": ErrorResponse}},
    summary="Update a note",
    description=(
        "Replaces the note's content (last write wins), pushes the new content to "
        "every streaming subscriber of the note and saves the snapshot."
    ),
)
async def update_note(
    note_id: str,
    request: Request,
    engine: SyncEngine = Depends(get_sync_engine),
) -> UpdateResponse:
    note_id = engine.sync.validate_id(note_id)
    payload = await _read_update_body(request)
    sender = payload.get("sender")

    note = await engine.sync.update(
        note_id,
        payload["content"],
        sender=sender if isinstance(sender, str) else None,
    )
    return UpdateResponse(last_updated=note.last_updated)


@router.post(
    "/notes",
    status_code=201,
    response_model=NoteCreatedResponse,
    summary="Create a note",
    description="Allocates an unused random note id and returns the empty note.",
)
async def create_note(engine: SyncEngine = Depends(get_sync_engine)) -> NoteCreatedResponse:
    return NoteCreatedResponse.from_note(engine.sync.create())
