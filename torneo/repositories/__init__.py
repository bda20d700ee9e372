"""Aggregate persistence: protocols, in-memory and SQLAlchemy implementations."""
