"""
NoteSync — Package Initializer
==============================

What: Real-time shared-text synchronization service.
Why:  Several clients attached to the same note id see each other's edits
      immediately, and note content survives process restarts.

Architecture Note:

    ┌─────────────────────────────────────┐
    │     Routes (HTTP + WebSocket)       │  ← transport concerns only
    ├─────────────────────────────────────┤
    │   SyncService / NoteSession         │  ← fetch, update, broadcast
    ├─────────────────────────────────────┤
    │ NoteStore │ SubscriptionRegistry    │  ← in-memory authority
    ├─────────────────────────────────────┤
    │   PersistenceGateway (JSON file)    │  ← durable snapshot
    └─────────────────────────────────────┘

    All components are owned by a single SyncEngine created per application
    (see notesync.services.engine). There is no module-level mutable state.
"""

__version__ = "0.1.0"
