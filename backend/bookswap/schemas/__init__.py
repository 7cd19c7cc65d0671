"""
BookSwap Backend - Pydantic Schemas
=====================================

API contracts, kept separate from the SQLAlchemy models so the exposed
shape (resolved avatar URLs, embedded book summaries) can differ from
the stored one.
"""
