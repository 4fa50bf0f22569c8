"""
NoteSync — Note Model
=====================

What:  The unit of synchronized text, plus its snapshot (de)serialization.
Why frozen: A Note is replaced, never mutated. Swapping one immutable object
       into the store keeps `content` and `last_updated` consistent for every
       reader, and lets a snapshot copy the map without deep-copying values.

Snapshot entry format:
    "ab12cd": {"content": "hello", "lastUpdated": "2026-01-15T12:00:00+00:00"}
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Note:
    id: str
    content: str
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, note_id: str, raw: Dict[str, Any]) -> "Note":
        """
        Rebuild a Note from a snapshot entry.

        Raises:
            ValueError: content is not text or lastUpdated is not ISO 8601
            KeyError:   a required field is missing
        """
        content = raw["content"]
        if not isinstance(content, str):
            raise ValueError("content must be a string")
        last_updated = datetime.fromisoformat(raw["lastUpdated"])
        # Naive timestamps from older snapshots are taken as UTC
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)
        return cls(id=note_id, content=content, last_updated=last_updated)
