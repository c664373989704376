"""Thin wrapper around py_webauthn for option construction and verification.

The ceremony service talks to the cryptographic checks through the
:class:`CeremonyVerifier` protocol. :class:`WebAuthnVerifier` is the
production implementation; tests may swap in their own.
"""

from __future__ import annotations

import json
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass
from typing import Any, Protocol

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    parse_authentication_credential_json,
    parse_registration_credential_json,
)
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from passkey_demo.config import Settings
from passkey_demo.errors import VerificationFailed


def _uv(settings: Settings) -> UserVerificationRequirement:
    """Map setting string to webauthn enum value."""
    return UserVerificationRequirement(settings.user_verification)


def _att(settings: Settings) -> AttestationConveyancePreference:
    return AttestationConveyancePreference(settings.attestation)


# ---------------------------------------------------------------------------
# Wire encoding (URL-safe base64, no padding)
# ---------------------------------------------------------------------------


def bytes_to_base64url(b: bytes) -> str:
    return urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def base64url_to_bytes(s: str) -> bytes:
    padding = 4 - len(s) % 4
    if padding != 4:
        s += "=" * padding
    return urlsafe_b64decode(s)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def make_registration_options(
    *,
    rp_id: str,
    rp_name: str,
    user_id: bytes,
    user_name: str,
    user_display_name: str,
    challenge: bytes,
    settings: Settings,
) -> dict[str, Any]:
    """Build PublicKeyCredentialCreationOptions and return as JSON-safe dict."""
    opts = generate_registration_options(
        rp_id=rp_id,
        rp_name=rp_name,
        user_id=user_id,
        user_name=user_name,
        user_display_name=user_display_name,
        challenge=challenge,
        timeout=settings.challenge_ttl_seconds * 1000,
        attestation=_att(settings),
        authenticator_selection=AuthenticatorSelectionCriteria(
            resident_key=ResidentKeyRequirement.REQUIRED,
            user_verification=_uv(settings),
        ),
    )
    result: dict[str, Any] = json.loads(options_to_json(opts))
    return result


def make_authentication_options(
    *,
    rp_id: str,
    challenge: bytes,
    settings: Settings,
) -> dict[str, Any]:
    """Build PublicKeyCredentialRequestOptions and return as JSON-safe dict."""
    opts = generate_authentication_options(
        rp_id=rp_id,
        challenge=challenge,
        timeout=settings.challenge_ttl_seconds * 1000,
        user_verification=_uv(settings),
    )
    result: dict[str, Any] = json.loads(options_to_json(opts))
    return result


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegistrationVerification:
    credential_id: bytes
    public_key: bytes
    sign_count: int
    aaguid: str | None
    device_type: str | None
    backed_up: bool


@dataclass(frozen=True)
class AuthenticationVerification:
    credential_id: bytes
    new_sign_count: int


class CeremonyVerifier(Protocol):
    def verify_registration(
        self,
        *,
        credential_json: dict[str, Any],
        expected_challenge: bytes,
        expected_rp_id: str,
        expected_origin: str,
    ) -> RegistrationVerification: ...

    def verify_authentication(
        self,
        *,
        credential_json: dict[str, Any],
        expected_challenge: bytes,
        expected_rp_id: str,
        expected_origin: str,
        credential_public_key: bytes,
    ) -> AuthenticationVerification: ...


def verify_registration(
    *,
    credential_json: dict[str, Any],
    expected_challenge: bytes,
    expected_rp_id: str,
    expected_origin: str,
) -> RegistrationVerification:
    """Verify a registration response.

    Raises :class:`VerificationFailed` on any parse, origin, RP ID, challenge
    or attestation problem, and when the result lacks credential data.
    """
    try:
        cred = parse_registration_credential_json(json.dumps(credential_json))
        verified = verify_registration_response(
            credential=cred,
            expected_challenge=expected_challenge,
            expected_rp_id=expected_rp_id,
            expected_origin=expected_origin,
        )
    except (WebAuthnException, ValueError, KeyError, TypeError) as exc:
        raise VerificationFailed(f"Registration verification failed: {exc}") from exc

    if not verified.credential_id or not verified.credential_public_key:
        raise VerificationFailed("Registration response is missing credential data")

    device_type = getattr(verified.credential_device_type, "value", None)
    return RegistrationVerification(
        credential_id=verified.credential_id,
        public_key=verified.credential_public_key,
        sign_count=verified.sign_count,
        aaguid=verified.aaguid or None,
        device_type=device_type,
        backed_up=bool(verified.credential_backed_up),
    )


def verify_authentication(
    *,
    credential_json: dict[str, Any],
    expected_challenge: bytes,
    expected_rp_id: str,
    expected_origin: str,
    credential_public_key: bytes,
) -> AuthenticationVerification:
    """Verify an authentication response against the stored public key.

    py_webauthn is given a current count of 0 so that it never rejects on the
    counter itself; the caller compares the verified counter against the
    stored one and reports a regression as a replay.
    """
    try:
        cred = parse_authentication_credential_json(json.dumps(credential_json))
        verified = verify_authentication_response(
            credential=cred,
            expected_challenge=expected_challenge,
            expected_rp_id=expected_rp_id,
            expected_origin=expected_origin,
            credential_public_key=credential_public_key,
            credential_current_sign_count=0,
        )
    except (WebAuthnException, ValueError, KeyError, TypeError) as exc:
        raise VerificationFailed(f"Authentication verification failed: {exc}") from exc

    return AuthenticationVerification(
        credential_id=verified.credential_id,
        new_sign_count=verified.new_sign_count,
    )


class WebAuthnVerifier:
    """Default :class:`CeremonyVerifier` backed by py_webauthn."""

    def verify_registration(self, **kwargs: Any) -> RegistrationVerification:
        return verify_registration(**kwargs)

    def verify_authentication(self, **kwargs: Any) -> AuthenticationVerification:
        return verify_authentication(**kwargs)
