"""Challenge store - single-use, TTL-bounded challenges keyed by flow id."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from sqlalchemy import delete, select

from passkey_demo.db.session import Database
from passkey_demo.errors import ChallengeMissing
from passkey_demo.obs.redaction import redact_identifier
from passkey_demo.passkeys.ids import new_challenge, new_flow_id
from passkey_demo.passkeys.models import PasskeyChallenge, as_utc
from passkey_demo.passkeys.webauthn import base64url_to_bytes, bytes_to_base64url

logger = logging.getLogger(__name__)


class CeremonyKind(StrEnum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


@dataclass(frozen=True)
class IssuedChallenge:
    """Snapshot of a challenge row, detached from any session."""

    flow_id: str
    kind: CeremonyKind
    value: bytes
    rp_id: str
    origin: str
    created_at: datetime
    expires_at: datetime
    user_handle: bytes | None = None
    display_name: str | None = None

    @classmethod
    def from_row(cls, row: PasskeyChallenge) -> IssuedChallenge:
        return cls(
            flow_id=row.id,
            kind=CeremonyKind(row.kind),
            value=base64url_to_bytes(row.challenge),
            rp_id=row.rp_id,
            origin=row.origin,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
            user_handle=base64url_to_bytes(row.user_handle) if row.user_handle else None,
            display_name=row.display_name,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or datetime.now(UTC))


class ChallengeStore:
    """Owns challenge rows.

    Each ceremony gets its own row keyed by a random flow id, so concurrent
    ceremonies of the same kind never collide. ``consume`` deletes the row in
    the same transaction that reads it.
    """

    def __init__(self, db: Database, *, ttl_seconds: int) -> None:
        self._db = db
        self._ttl = timedelta(seconds=ttl_seconds)

    async def issue(
        self,
        kind: CeremonyKind,
        *,
        rp_id: str,
        origin: str,
        user_handle: bytes | None = None,
        display_name: str | None = None,
    ) -> IssuedChallenge:
        now = datetime.now(UTC)
        row = PasskeyChallenge(
            id=new_flow_id(),
            challenge=bytes_to_base64url(new_challenge()),
            kind=kind.value,
            user_handle=bytes_to_base64url(user_handle) if user_handle is not None else None,
            display_name=display_name,
            rp_id=rp_id,
            origin=origin,
            created_at=now,
            expires_at=now + self._ttl,
        )
        async with self._db.transaction() as session:
            session.add(row)
        logger.debug("issued %s challenge flow=%s", kind.value, redact_identifier(row.id))
        return IssuedChallenge.from_row(row)

    async def consume(self, flow_id: str, kind: CeremonyKind) -> IssuedChallenge:
        """Retrieve and delete the challenge for *flow_id*.

        Raises :class:`ChallengeMissing` when there is no unconsumed challenge
        of *kind* for the flow, or when it has expired. Expired challenges are
        deleted all the same.
        """
        async with self._db.transaction() as session:
            result = await session.execute(
                select(PasskeyChallenge).filter(
                    PasskeyChallenge.id == flow_id,
                    PasskeyChallenge.kind == kind.value,
                )
            )
            if (row := result.scalars().first()) is None:
                raise ChallengeMissing(f"No {kind.value} challenge for this flow")
            challenge = IssuedChallenge.from_row(row)

            deleted = await session.execute(
                delete(PasskeyChallenge)
                .filter(PasskeyChallenge.id == flow_id)
                .execution_options(synchronize_session=False)
            )
            if deleted.rowcount != 1:  # type: ignore[attr-defined]
                raise ChallengeMissing(f"No {kind.value} challenge for this flow")
            session.expunge(row)

        if challenge.is_expired():
            logger.info("expired %s challenge flow=%s", kind.value, redact_identifier(flow_id))
            raise ChallengeMissing(f"{kind.value.capitalize()} challenge expired")
        return challenge

    async def purge_expired(self) -> int:
        """Delete expired challenges. Returns count deleted."""
        async with self._db.transaction() as session:
            result = await session.execute(
                delete(PasskeyChallenge).filter(PasskeyChallenge.expires_at < datetime.now(UTC))
            )
        count: int = result.rowcount  # type: ignore[attr-defined]
        if count:
            logger.info("purged %d expired challenges", count)
        return count
