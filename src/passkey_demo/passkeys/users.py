"""User provisioning for newly registered passkeys."""

from __future__ import annotations

import secrets
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from passkey_demo.passkeys.ids import new_user_id
from passkey_demo.passkeys.models import PasskeyUser
from passkey_demo.passkeys.webauthn import bytes_to_base64url

_FIRST_NAMES = (
    "amber", "basil", "cedar", "dahlia", "ember", "fern", "hazel", "indigo",
    "juniper", "kestrel", "linden", "maple", "nova", "olive", "piper", "quinn",
    "rowan", "sage", "tamsin", "willow",
)  # fmt: skip

_LAST_NAMES = (
    "brook", "cliff", "dune", "field", "glade", "harbor", "isle", "knoll",
    "marsh", "meadow", "ridge", "river", "shore", "stone", "vale", "wood",
)  # fmt: skip


def generate_display_name() -> str:
    """Temporary display name such as ``hazel-ridge-48213``."""
    first = secrets.choice(_FIRST_NAMES)
    last = secrets.choice(_LAST_NAMES)
    number = 10000 + secrets.randbelow(90000)
    return f"{first}-{last}-{number}"


class UserProvisioner(Protocol):
    async def provision(
        self,
        session: AsyncSession,
        *,
        user_handle: bytes,
        display_name: str | None,
    ) -> str:
        """Create the identity behind a new passkey and return its user id."""
        ...


class DatabaseUserProvisioner:
    """Store the identity as a :class:`PasskeyUser` row in the caller's transaction."""

    async def provision(
        self,
        session: AsyncSession,
        *,
        user_handle: bytes,
        display_name: str | None,
    ) -> str:
        user = PasskeyUser(
            id=new_user_id(),
            user_handle=bytes_to_base64url(user_handle),
            display_name=display_name,
        )
        session.add(user)
        await session.flush()
        return user.id
