"""
NoteSync — Custom Exception Hierarchy
=====================================

What:  Application-specific exceptions for each failure category.
How:   Each exception carries a user-facing message, an optional context dict
       (logged, not necessarily returned) and a machine-readable error code.
       Global handlers in main.py turn them into JSON error responses; the
       streaming session turns them into `{"type": "error"}` messages.

Exception Hierarchy:
    NoteSyncError (base)
    ├── ValidationError              → 400 Bad Request
    │   ├── InvalidIdentifierError     id does not match the note id format
    │   ├── InvalidPayloadError        missing or non-text content
    │   └── MalformedMessageError      unparseable streaming message
    ├── PersistenceError             → 500 (contained by the gateway)
    └── DeliveryError                  subscriber channel not writable

Propagation:
    Validation errors surface to the caller before any state is touched.
    Persistence and delivery errors are contained where they occur and never
    reach unrelated clients.
"""

from typing import Any, Dict, Optional


class NoteSyncError(Exception):
    """
    Base exception for all NoteSync errors.

    Attributes:
        message:    User-facing description (safe to return in a response)
        context:    Additional debug info
        error_code: Stable identifier used in the `error` field of responses
    """

    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NoteSyncError):
    """Client input was rejected; nothing was mutated."""

    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidIdentifierError(ValidationError):
    """
    Raised when a note id fails the format check.

    Always user-caused and always raised before a note is created, a lock is
    allocated or a subscriber is joined.
    """

    error_code = "invalid_identifier"

    def __init__(self, note_id: Any = None, expected_length: Optional[int] = None):
        message = "Note id must be a lowercase alphanumeric token"
        if expected_length:
            message = f"Note id must be {expected_length} lowercase letters or digits"
        super().__init__(
            message=message,
            field="id",
            context={"note_id": note_id if isinstance(note_id, str) else repr(note_id)},
        )


class InvalidPayloadError(ValidationError):
    """Raised when update content is missing, not text, or too long."""

    error_code = "invalid_payload"

    def __init__(
        self,
        message: str = "Field 'content' must be a string",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, field="content", context=context)


class MalformedMessageError(ValidationError):
    """
    Raised for streaming messages that cannot be interpreted.

    The session logs and ignores these; the connection stays open.
    """

    error_code = "malformed_message"

    def __init__(
        self,
        message: str = "Message could not be parsed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(NoteSyncError):
    """
    Raised when the snapshot cannot be read or written.

    Recovery:
        - load failure: the engine starts with an empty store
        - save failure: logged; the in-memory update that triggered it stands
    """

    error_code = "persistence_error"

    def __init__(
        self,
        message: str = "Snapshot storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DeliveryError(NoteSyncError):
    """Raised when a message cannot be written to a subscriber's channel."""

    error_code = "delivery_error"

    def __init__(
        self,
        message: str = "Subscriber channel is closed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
