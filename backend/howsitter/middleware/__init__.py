"""
How Sitter Backend — Middleware Package
========================================

Request path (outermost first, as registered in create_app()):

    RateLimit → RequestID → RequestLogging → GZip → CORS → route

Rate limiting runs first so rejected requests cost nothing. RequestID is set
before RequestLogging so the access line carries the correlation id.
"""
