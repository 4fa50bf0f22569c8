# Services package init
"""
NoteSync — Services Layer
=========================

What:  The synchronization engine, independent of HTTP.

Service Inventory:
    - NoteStore:            in-memory note authority with per-note locks
    - PersistenceGateway:   JSON snapshot load/save (aiofiles + tenacity)
    - SubscriptionRegistry: per-note live subscribers, best-effort broadcast
    - SyncService:          fetch / update / create operations
    - NoteSession:          per-connection streaming state machine
    - LifecycleSweeper:     eviction of stale, unsubscribed notes
    - SyncEngine:           owns all of the above for one application

Routes stay thin: they translate transport details and call SyncService or
start a NoteSession.
"""
