"""passkey-demo - WebAuthn passkey ceremonies on FastAPI and SQLAlchemy."""

from passkey_demo.app import create_app
from passkey_demo.config import Settings
from passkey_demo.version import __version__

__all__ = ["Settings", "__version__", "create_app"]
