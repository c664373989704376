"""Passkey SQLAlchemy models."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from passkey_demo.db.base import Base
from passkey_demo.passkeys.ids import new_key_id, new_user_id


def _utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# PasskeyUser  (identity provisioned on successful registration)
# ---------------------------------------------------------------------------


class PasskeyUser(Base):
    __tablename__ = "passkey_users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_user_id)
    user_handle: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # base64url
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# PasskeyCredential  (many-to-one with PasskeyUser, never hard-deleted)
# ---------------------------------------------------------------------------


class PasskeyCredential(Base):
    __tablename__ = "passkey_credentials"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_key_id)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    credential_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)  # base64url
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # COSE
    sign_count: Mapped[int] = mapped_column(nullable=False, default=0)
    device_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    backed_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    aaguid: Mapped[str | None] = mapped_column(String(36), nullable=True)
    transports: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON array
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# PasskeyChallenge  (ceremony state, one row per flow, deleted on consume)
# ---------------------------------------------------------------------------


class PasskeyChallenge(Base):
    __tablename__ = "passkey_challenges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # flow id
    challenge: Mapped[str] = mapped_column(Text, nullable=False)  # base64url-encoded
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # registration | authentication
    user_handle: Mapped[str | None] = mapped_column(String(64), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rp_id: Mapped[str] = mapped_column(String(255), nullable=False)
    origin: Mapped[str] = mapped_column(String(512), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_passkey_challenges_expires_at", "expires_at"),)
