"""
BookSwap Backend - Application Package
========================================

Backend of a social book-swapping platform.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← swap lifecycle, notifications
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes pass a RequestContext (caller + session) to services explicitly;
    services never read ambient request state.
"""

__version__ = "1.0.0"
