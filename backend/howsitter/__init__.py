"""
How Sitter Backend — Application Package Initializer
=====================================================

What: Marks the `howsitter` directory as a Python package.
Why:  Enables module imports like `from howsitter.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependencies
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Availability, lifecycle, listings
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The booking core (availability checks and the arrangement lifecycle)
    lives entirely in the services layer and can be exercised without HTTP.
"""

__version__ = "1.0.0"
