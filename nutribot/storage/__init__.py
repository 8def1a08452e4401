"""Storage ports and adapters (SQLAlchemy async, in-memory)."""
