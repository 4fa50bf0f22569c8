# Routes package init
"""
NoteSync — API Routes Package
=============================

Route Inventory:
    - notes.py:   GET  /api/note/{id}     fetch a note
                  POST /api/note/{id}     update a note
                  POST /api/notes         allocate a new note id
    - stream.py:  WS   /ws/{id}           live updates for one note
    - health.py:  GET  /health            liveness probe

Routes handle transport details only and delegate to the sync engine found
on `app.state.engine`.
"""
