"""Packaged Alembic migrations."""
