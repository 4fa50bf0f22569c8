"""
Note identifier format: fixed-length tokens of lowercase letters and digits.

Validation runs before any state is touched; generation uses `secrets` so
fresh ids are not guessable from earlier ones.
"""

import re
import secrets
import string
from functools import lru_cache
from typing import Any

from notesync.exceptions import InvalidIdentifierError

NOTE_ID_ALPHABET = string.ascii_lowercase + string.digits


@lru_cache(maxsize=None)
def _pattern(length: int) -> re.Pattern:
    return re.compile(rf"[a-z0-9]{{{length}}}")


def is_valid_note_id(note_id: Any, length: int) -> bool:
    return isinstance(note_id, str) and _pattern(length).fullmatch(note_id) is not None


def validate_note_id(note_id: Any, length: int) -> str:
    """Return `note_id` unchanged, or raise InvalidIdentifierError."""
    if not is_valid_note_id(note_id, length):
        raise InvalidIdentifierError(note_id, expected_length=length)
    return note_id


def generate_note_id(length: int) -> str:
    return "".join(secrets.choice(NOTE_ID_ALPHABET) for _ in range(length))
