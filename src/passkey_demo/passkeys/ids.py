"""Prefixed base32 ID generators and validators.

Scheme
------
* Generate 20 random bytes -> base32-encode (lowercase, no padding) -> 32 chars.
* Replace the first character with a prefix:
  - 'u' for user IDs
  - 'k' for internal credential (key) IDs

Flow IDs and WebAuthn user handles are opaque random values and carry no
prefix.
"""

from __future__ import annotations

import base64
import secrets

_ID_LEN = 32
_ALLOWED_CHARS = set("abcdefghijklmnopqrstuvwxyz234567")

USER_HANDLE_BYTES = 16
CHALLENGE_BYTES = 32


def random_base32(nbytes: int = 20) -> str:
    """Return a lowercase base32 string (no padding) from *nbytes* random bytes.

    *nbytes* must be a multiple of 5 to avoid '=' padding.
    """
    if nbytes <= 0 or nbytes % 5 != 0:
        raise ValueError("nbytes must be a positive multiple of 5")
    return base64.b32encode(secrets.token_bytes(nbytes)).decode("ascii").lower()


def new_user_id() -> str:
    """Generate a user ID (32 chars, starts with 'u')."""
    return "u" + random_base32()[1:]


def new_key_id() -> str:
    """Generate a credential key ID (32 chars, starts with 'k')."""
    return "k" + random_base32()[1:]


def new_flow_id() -> str:
    """Generate the per-ceremony key that correlates begin and complete."""
    return secrets.token_urlsafe(32)


def new_user_handle() -> bytes:
    """Random WebAuthn user handle, distinct from the application user ID."""
    return secrets.token_bytes(USER_HANDLE_BYTES)


def new_challenge() -> bytes:
    return secrets.token_bytes(CHALLENGE_BYTES)


def _has_prefix(value: str, prefix: str) -> bool:
    return (
        len(value) == _ID_LEN
        and value[:1] == prefix
        and all(c in _ALLOWED_CHARS for c in value[1:])
    )


def is_user_id(value: str) -> bool:
    """Return True when *value* looks like a valid user ID."""
    return _has_prefix(value, "u")


def is_key_id(value: str) -> bool:
    """Return True when *value* looks like a valid key ID."""
    return _has_prefix(value, "k")
