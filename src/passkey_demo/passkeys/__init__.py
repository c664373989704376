"""Passkey (WebAuthn) ceremonies, stores and verification."""

from passkey_demo.passkeys.challenges import CeremonyKind, ChallengeStore, IssuedChallenge
from passkey_demo.passkeys.credentials import CredentialStore
from passkey_demo.passkeys.service import CeremonyResult, CeremonyService
from passkey_demo.passkeys.webauthn import (
    CeremonyVerifier,
    WebAuthnVerifier,
    base64url_to_bytes,
    bytes_to_base64url,
)

__all__ = [
    "CeremonyKind",
    "CeremonyResult",
    "CeremonyService",
    "CeremonyVerifier",
    "ChallengeStore",
    "CredentialStore",
    "IssuedChallenge",
    "WebAuthnVerifier",
    "base64url_to_bytes",
    "bytes_to_base64url",
]
