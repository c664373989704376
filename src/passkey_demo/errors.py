"""Ceremony error taxonomy.

Every failure is terminal for the current ceremony attempt: the caller must
begin a fresh ceremony (and therefore get a fresh challenge). Only
``StorageUnavailable`` is marked retryable, and even then the retry starts
from the beginning of the ceremony.
"""

from __future__ import annotations


class PasskeyError(Exception):
    """Base class for passkey ceremony failures."""

    code: str = "PASSKEY_ERROR"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


class ChallengeMissing(PasskeyError):
    """No active challenge for this ceremony; restart it."""

    code = "CHALLENGE_MISSING"
    status_code = 400


class VerificationFailed(PasskeyError):
    """The WebAuthn response did not verify."""

    code = "VERIFICATION_FAILED"
    status_code = 400


class DuplicateCredential(PasskeyError):
    """This credential is already registered."""

    code = "DUPLICATE_CREDENTIAL"
    status_code = 409


class CredentialNotFound(PasskeyError):
    """Unknown or deactivated credential."""

    code = "CREDENTIAL_NOT_FOUND"
    status_code = 401


class ReplayDetected(PasskeyError):
    """Signature counter did not advance; possible cloned authenticator."""

    code = "REPLAY_DETECTED"
    status_code = 401


class StorageUnavailable(PasskeyError):
    """Credential storage is unavailable; retry the ceremony from the start."""

    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    retryable = True


__all__ = [
    "ChallengeMissing",
    "CredentialNotFound",
    "DuplicateCredential",
    "PasskeyError",
    "ReplayDetected",
    "StorageUnavailable",
    "VerificationFailed",
]
