"""Database helpers."""

from passkey_demo.db.base import Base
from passkey_demo.db.engine import create_async_engine_from_settings
from passkey_demo.db.session import Database

__all__ = [
    "Base",
    "Database",
    "create_async_engine_from_settings",
]
