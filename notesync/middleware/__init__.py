# Middleware package init
"""
NoteSync — Middleware Package
=============================

What:  Cross-cutting concerns applied to every HTTP request.

Middleware Chain:
    Request → [CORS] → [Request ID] → [Logging] → [Rate Limit] → [GZip] → Route

    1. CORS outermost: every response, 429s included, is readable by browsers
    2. Request ID: correlation id for logs and error bodies
    3. Logging: method, path, status, duration
    4. Rate Limit: reject abusive writers before the route runs

WebSocket connections pass through the Starlette HTTP middlewares untouched;
streaming sessions do their own logging.
"""
