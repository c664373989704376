"""Credential store - durable passkey records with soft deactivation."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from passkey_demo.db.session import Database
from passkey_demo.errors import CredentialNotFound, DuplicateCredential, ReplayDetected
from passkey_demo.obs.redaction import redact_identifier
from passkey_demo.passkeys.ids import new_key_id
from passkey_demo.passkeys.models import PasskeyCredential

logger = logging.getLogger(__name__)


class CredentialStore:
    """Owns :class:`PasskeyCredential` rows.

    Lookups only ever see active credentials. Mutations run in their own
    transaction unless a *session* is passed, in which case they join the
    caller's transaction.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(
        self,
        *,
        user_id: str,
        credential_id: str,
        public_key: bytes,
        counter: int,
        device_type: str | None = None,
        backed_up: bool = False,
        aaguid: str | None = None,
        transports: Sequence[str] | None = None,
        session: AsyncSession | None = None,
    ) -> PasskeyCredential:
        """Insert a new credential.

        Raises :class:`DuplicateCredential` if *credential_id* is already
        stored, whether active or deactivated.
        """
        if counter < 0:
            raise ValueError("counter must be >= 0")

        async with self._db.transaction(session) as db:
            existing = await db.scalar(
                select(PasskeyCredential.id).filter(
                    PasskeyCredential.credential_id == credential_id
                )
            )
            if existing is not None:
                raise DuplicateCredential()

            now = datetime.now(UTC)
            cred = PasskeyCredential(
                id=new_key_id(),
                user_id=user_id,
                credential_id=credential_id,
                public_key=public_key,
                sign_count=counter,
                device_type=device_type,
                backed_up=backed_up,
                aaguid=aaguid,
                transports=json.dumps(list(transports)) if transports else None,
                created_at=now,
                last_used_at=now,
                active=True,
            )
            db.add(cred)
            try:
                await db.flush()
            except IntegrityError as exc:
                # Lost a race with a concurrent registration of the same credential.
                raise DuplicateCredential() from exc

        logger.info(
            "stored credential %s for user %s", redact_identifier(credential_id), cred.user_id
        )
        return cred

    async def find_by_credential_id(self, credential_id: str) -> PasskeyCredential | None:
        """Return the active credential with *credential_id*, or None."""
        async with self._db.transaction() as db:
            result = await db.execute(
                select(PasskeyCredential).filter(
                    PasskeyCredential.credential_id == credential_id,
                    PasskeyCredential.active.is_(True),
                )
            )
            return result.scalars().first()

    async def list_by_user(self, user_id: str) -> list[PasskeyCredential]:
        """Active credentials for *user_id*, oldest first."""
        async with self._db.transaction() as db:
            result = await db.execute(
                select(PasskeyCredential)
                .filter(
                    PasskeyCredential.user_id == user_id,
                    PasskeyCredential.active.is_(True),
                )
                .order_by(PasskeyCredential.created_at)
            )
            return list(result.scalars().all())

    async def update_counter(self, credential_id: str, new_counter: int) -> PasskeyCredential:
        """Store *new_counter* and refresh ``last_used_at``.

        The UPDATE only matches while the stored counter is below
        *new_counter* (or both are zero), so two racing authentications can
        never move the counter backwards. Raises :class:`CredentialNotFound`
        for unknown or deactivated credentials and :class:`ReplayDetected`
        when the guard rejects.
        """
        advances = PasskeyCredential.sign_count < new_counter
        if new_counter == 0:
            advances = or_(advances, PasskeyCredential.sign_count == 0)

        async with self._db.transaction() as db:
            result = await db.execute(
                update(PasskeyCredential)
                .filter(
                    PasskeyCredential.credential_id == credential_id,
                    PasskeyCredential.active.is_(True),
                    advances,
                )
                .values(sign_count=new_counter, last_used_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:  # type: ignore[attr-defined]
                cred = await db.scalar(
                    select(PasskeyCredential).filter(
                        PasskeyCredential.credential_id == credential_id
                    )
                )
                return cred  # type: ignore[return-value]

            current = await db.scalar(
                select(PasskeyCredential.sign_count).filter(
                    PasskeyCredential.credential_id == credential_id,
                    PasskeyCredential.active.is_(True),
                )
            )
        if current is None:
            raise CredentialNotFound()
        raise ReplayDetected(
            f"Signature counter {new_counter} does not advance stored counter {current}"
        )

    async def deactivate(self, credential_id: str) -> bool:
        """Mark a credential inactive. Idempotent.

        Returns False only when *credential_id* was never stored.
        """
        async with self._db.transaction() as db:
            result = await db.execute(
                select(PasskeyCredential).filter(PasskeyCredential.credential_id == credential_id)
            )
            if (cred := result.scalars().first()) is None:
                return False
            if cred.active:
                cred.active = False
                cred.deactivated_at = datetime.now(UTC)
                logger.info("deactivated credential %s", redact_identifier(credential_id))
        return True
