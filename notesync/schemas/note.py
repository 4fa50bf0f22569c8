"""
NoteSync — Pydantic Request/Response Schemas
============================================

What:  The HTTP and streaming wire contracts.
How:   Python attributes are snake_case; wire names follow the client protocol
       (`lastUpdated`) through aliases. FastAPI serializes response models by
       alias; streaming messages use `to_wire()` for the same JSON shape.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from notesync.models.note import Note


class _WireModel(BaseModel):
    model_config = {"populate_by_name": True}

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ══════════════════════════════════════════════════════════════════════════
# HTTP Responses
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(_WireModel):
    """Returned by GET /api/note/{id}."""
    content: str = Field(description="Current note text")
    last_updated: datetime = Field(
        alias="lastUpdated",
        description="Time of the most recent accepted update (UTC ISO 8601)",
    )

    @classmethod
    def from_note(cls, note: Note) -> "NoteResponse":
        return cls(content=note.content, last_updated=note.last_updated)


class UpdateResponse(_WireModel):
    """Returned by POST /api/note/{id} once the update is accepted."""
    success: bool = Field(default=True)
    last_updated: datetime = Field(alias="lastUpdated")


class NoteCreatedResponse(_WireModel):
    """Returned by POST /api/notes with a freshly allocated id."""
    id: str = Field(description="New note identifier")
    content: str = Field(default="")
    last_updated: datetime = Field(alias="lastUpdated")

    @classmethod
    def from_note(cls, note: Note) -> "NoteCreatedResponse":
        return cls(id=note.id, content=note.content, last_updated=note.last_updated)


class ErrorResponse(BaseModel):
    """
    Standard error envelope for every HTTP error.

    Example:
        {
            "error": "invalid_identifier",
            "message": "Note id must be 6 lowercase letters or digits",
            "details": {"field": "id", "note_id": "AB"},
            "request_id": "1f2e3d4c"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Liveness probe body; `status` is always "ok" while the process serves."""
    status: str = Field(default="ok")
    version: str
    uptime_seconds: float
    notes: int = Field(description="Notes currently held in memory")
    subscribers: int = Field(description="Live streaming connections")


# ══════════════════════════════════════════════════════════════════════════
# Streaming Messages (server → client)
# ══════════════════════════════════════════════════════════════════════════


class InitialContentMessage(_WireModel):
    """Pushed on join and in reply to `get_content`."""
    type: Literal["initial_content"] = "initial_content"
    content: str
    last_updated: datetime = Field(alias="lastUpdated")

    @classmethod
    def from_note(cls, note: Note) -> "InitialContentMessage":
        return cls(content=note.content, last_updated=note.last_updated)


class ContentUpdateMessage(_WireModel):
    """Broadcast to every other subscriber after an accepted update."""
    type: Literal["content_update"] = "content_update"
    content: str
    last_updated: datetime = Field(alias="lastUpdated")
    sender: Optional[str] = None

    @classmethod
    def from_note(cls, note: Note, sender: Optional[str] = None) -> "ContentUpdateMessage":
        return cls(content=note.content, last_updated=note.last_updated, sender=sender)


class ErrorMessage(_WireModel):
    """Sent to a single connection whose request was rejected."""
    type: Literal["error"] = "error"
    error: str
    message: str


class PongMessage(_WireModel):
    type: Literal["pong"] = "pong"
