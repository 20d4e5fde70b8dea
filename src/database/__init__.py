"""SQLAlchemy models and connection helpers for the database storage backend."""
