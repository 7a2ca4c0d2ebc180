"""
media_kernel -- Shared infrastructure for the media reconciliation pipeline.

Structured logging, the typed exception hierarchy, the injectable clock, and
SQLAlchemy engine/session management. Nothing here knows about campaigns,
strategies, or any other source entity; media_ingestion builds on top of it.
"""
