"""Passkey (WebAuthn) ceremonies - begin/complete for registration and authentication."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from passkey_demo.config import Settings
from passkey_demo.db.session import Database
from passkey_demo.errors import CredentialNotFound, ReplayDetected, VerificationFailed
from passkey_demo.obs.redaction import redact_identifier
from passkey_demo.passkeys.challenges import CeremonyKind, ChallengeStore
from passkey_demo.passkeys.credentials import CredentialStore
from passkey_demo.passkeys.ids import new_user_handle
from passkey_demo.passkeys.schemas import AuthenticationCredential, RegistrationCredential
from passkey_demo.passkeys.users import UserProvisioner, generate_display_name
from passkey_demo.passkeys.webauthn import (
    CeremonyVerifier,
    base64url_to_bytes,
    bytes_to_base64url,
    make_authentication_options,
    make_registration_options,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CeremonyResult:
    verified: bool
    user_id: str


def sign_count_advanced(stored: int, presented: int) -> bool:
    """Counter rule: strictly increasing, or both zero for authenticators without counters."""
    return presented > stored or (presented == 0 and stored == 0)


class CeremonyService:
    """Coordinates the challenge store, credential store and verifier.

    Holds no ceremony state of its own; every begin/complete pair is
    correlated through the flow id handed out by ``begin_*``.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        db: Database,
        challenges: ChallengeStore,
        credentials: CredentialStore,
        users: UserProvisioner,
        verifier: CeremonyVerifier,
    ) -> None:
        self.settings = settings
        self.db = db
        self.challenges = challenges
        self.credentials = credentials
        self.users = users
        self.verifier = verifier

    async def _verify(self, fn: Callable[..., T], **kwargs: Any) -> T:
        """Run a verification primitive off the event loop under the configured timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(functools.partial(fn, **kwargs)),
                timeout=self.settings.verify_timeout_seconds,
            )
        except TimeoutError as exc:
            raise VerificationFailed("Verification timed out") from exc

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    async def begin_registration(self) -> tuple[str, dict]:
        """Issue a registration challenge, return ``(flow_id, options)``."""
        rp_id = self.settings.effective_rp_id()
        origin = self.settings.effective_origin()
        user_handle = new_user_handle()
        display_name = generate_display_name()

        challenge = await self.challenges.issue(
            CeremonyKind.REGISTRATION,
            rp_id=rp_id,
            origin=origin,
            user_handle=user_handle,
            display_name=display_name,
        )
        options = make_registration_options(
            rp_id=rp_id,
            rp_name=self.settings.rp_name,
            user_id=user_handle,
            user_name=display_name,
            user_display_name=display_name,
            challenge=challenge.value,
            settings=self.settings,
        )
        return challenge.flow_id, options

    async def complete_registration(
        self, flow_id: str, credential: RegistrationCredential
    ) -> CeremonyResult:
        """Verify an attestation and persist the new credential.

        The challenge is consumed before verification starts, so a failure at
        any later step still leaves it unusable.
        """
        challenge = await self.challenges.consume(flow_id, CeremonyKind.REGISTRATION)
        if challenge.user_handle is None:
            raise VerificationFailed("Registration challenge has no user handle")

        registration = await self._verify(
            self.verifier.verify_registration,
            credential_json=credential.to_webauthn_json(),
            expected_challenge=challenge.value,
            expected_rp_id=challenge.rp_id,
            expected_origin=challenge.origin,
        )
        try:
            raw_id = base64url_to_bytes(credential.raw_id)
        except ValueError as exc:
            raise VerificationFailed("Malformed credential id") from exc
        if raw_id != registration.credential_id:
            raise VerificationFailed("Credential id does not match the attested credential")
        credential_id = bytes_to_base64url(registration.credential_id)

        async with self.db.transaction() as session:
            user_id = await self.users.provision(
                session,
                user_handle=challenge.user_handle,
                display_name=challenge.display_name,
            )
            await self.credentials.create(
                user_id=user_id,
                credential_id=credential_id,
                public_key=registration.public_key,
                counter=registration.sign_count,
                device_type=registration.device_type,
                backed_up=registration.backed_up,
                aaguid=registration.aaguid,
                transports=credential.response.transports,
                session=session,
            )

        logger.info("passkey registered user=%s", user_id)
        return CeremonyResult(verified=True, user_id=user_id)

    # -----------------------------------------------------------------------
    # Authentication (username-less, discoverable credentials)
    # -----------------------------------------------------------------------

    async def begin_authentication(self) -> tuple[str, dict]:
        """Issue an authentication challenge, return ``(flow_id, options)``."""
        rp_id = self.settings.effective_rp_id()
        origin = self.settings.effective_origin()

        challenge = await self.challenges.issue(
            CeremonyKind.AUTHENTICATION, rp_id=rp_id, origin=origin
        )
        options = make_authentication_options(
            rp_id=rp_id,
            challenge=challenge.value,
            settings=self.settings,
        )
        return challenge.flow_id, options

    async def complete_authentication(
        self, flow_id: str, credential: AuthenticationCredential
    ) -> CeremonyResult:
        """Verify an assertion, enforce the signature counter, record the use."""
        challenge = await self.challenges.consume(flow_id, CeremonyKind.AUTHENTICATION)

        try:
            credential_id = bytes_to_base64url(base64url_to_bytes(credential.raw_id))
        except ValueError as exc:
            raise VerificationFailed("Malformed credential id") from exc

        stored = await self.credentials.find_by_credential_id(credential_id)
        if stored is None:
            logger.info(
                "authentication with unknown credential %s", redact_identifier(credential_id)
            )
            raise CredentialNotFound()

        assertion = await self._verify(
            self.verifier.verify_authentication,
            credential_json=credential.to_webauthn_json(),
            expected_challenge=challenge.value,
            expected_rp_id=challenge.rp_id,
            expected_origin=challenge.origin,
            credential_public_key=stored.public_key,
        )
        if bytes_to_base64url(assertion.credential_id) != stored.credential_id:
            raise VerificationFailed("Assertion is for a different credential")

        if not sign_count_advanced(stored.sign_count, assertion.new_sign_count):
            logger.warning(
                "SECURITY sign count regression credential=%s user=%s stored=%d presented=%d",
                redact_identifier(stored.credential_id),
                stored.user_id,
                stored.sign_count,
                assertion.new_sign_count,
            )
            raise ReplayDetected()

        try:
            await self.credentials.update_counter(stored.credential_id, assertion.new_sign_count)
        except ReplayDetected:
            logger.warning(
                "SECURITY concurrent sign count regression credential=%s user=%s",
                redact_identifier(stored.credential_id),
                stored.user_id,
            )
            raise

        logger.info("passkey authenticated user=%s", stored.user_id)
        return CeremonyResult(verified=True, user_id=stored.user_id)
