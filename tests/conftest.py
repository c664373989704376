"""Common test fixtures and helpers."""

from __future__ import annotations

import hashlib
import json
import os
import secrets
import struct
import subprocess
import sys
from typing import Any

import cbor2
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from passkey_demo.app import build_ceremony_service
from passkey_demo.config import Settings
from passkey_demo.db.session import Database
from passkey_demo.passkeys.webauthn import base64url_to_bytes, bytes_to_base64url

RP_ID = "localhost"
ORIGIN = "http://localhost:8000"

_FLAG_UP = 0x01
_FLAG_UV = 0x04
_FLAG_AT = 0x40


def _run_cli(*args: str, env_override: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    """Run the CLI via ``python -m passkey_demo``."""
    env = os.environ.copy()
    if env_override:
        env.update(env_override)
    return subprocess.run(
        [sys.executable, "-m", "passkey_demo", *args],
        capture_output=True,
        text=True,
        env=env,
    )


class SoftwareAuthenticator:
    """Minimal ES256 platform authenticator producing browser-shaped JSON.

    ``create`` answers creation options with a ``none`` attestation, ``get``
    answers request options with a signed assertion. The signature counter
    advances by one per assertion unless the authenticator is counterless.
    """

    def __init__(
        self,
        *,
        rp_id: str = RP_ID,
        origin: str = ORIGIN,
        sign_count: int = 0,
        counterless: bool = False,
    ) -> None:
        self.rp_id = rp_id
        self.origin = origin
        self.sign_count = sign_count
        self.counterless = counterless
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.credential_id = secrets.token_bytes(16)
        self.user_handle: bytes | None = None

    @property
    def credential_id_b64(self) -> str:
        return bytes_to_base64url(self.credential_id)

    def _cose_public_key(self) -> bytes:
        numbers = self.private_key.public_key().public_numbers()
        return cbor2.dumps(
            {
                1: 2,  # kty: EC2
                3: -7,  # alg: ES256
                -1: 1,  # crv: P-256
                -2: numbers.x.to_bytes(32, "big"),
                -3: numbers.y.to_bytes(32, "big"),
            }
        )

    def _client_data(self, kind: str, challenge: str) -> bytes:
        return json.dumps(
            {"type": kind, "challenge": challenge, "origin": self.origin, "crossOrigin": False},
            separators=(",", ":"),
        ).encode()

    def _rp_id_hash(self) -> bytes:
        return hashlib.sha256(self.rp_id.encode()).digest()

    def create(self, options: dict[str, Any]) -> dict[str, Any]:
        self.user_handle = base64url_to_bytes(options["user"]["id"])
        auth_data = (
            self._rp_id_hash()
            + bytes([_FLAG_UP | _FLAG_UV | _FLAG_AT])
            + struct.pack(">I", self.sign_count)
            + bytes(16)  # aaguid
            + struct.pack(">H", len(self.credential_id))
            + self.credential_id
            + self._cose_public_key()
        )
        attestation_object = cbor2.dumps({"fmt": "none", "attStmt": {}, "authData": auth_data})
        client_data = self._client_data("webauthn.create", options["challenge"])
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "authenticatorAttachment": "platform",
            "clientExtensionResults": {},
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "attestationObject": bytes_to_base64url(attestation_object),
                "transports": ["internal"],
            },
        }

    def get(self, options: dict[str, Any], *, sign_count: int | None = None) -> dict[str, Any]:
        if sign_count is None:
            if not self.counterless:
                self.sign_count += 1
            sign_count = self.sign_count
        auth_data = (
            self._rp_id_hash() + bytes([_FLAG_UP | _FLAG_UV]) + struct.pack(">I", sign_count)
        )
        client_data = self._client_data("webauthn.get", options["challenge"])
        signature = self.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(), ec.ECDSA(hashes.SHA256())
        )
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "authenticatorAttachment": "platform",
            "clientExtensionResults": {},
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "authenticatorData": bytes_to_base64url(auth_data),
                "signature": bytes_to_base64url(signature),
                "userHandle": bytes_to_base64url(self.user_handle or b""),
            },
        }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path}/passkey_test.db",
        env="development",
        rp_id=RP_ID,
        origin=ORIGIN,
    )


@pytest.fixture()
async def db(settings):
    database = Database.from_settings(settings)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture()
def ceremonies(settings, db):
    return build_ceremony_service(settings, db)


@pytest.fixture()
def authenticator():
    return SoftwareAuthenticator()


@pytest.fixture()
def make_authenticator():
    return SoftwareAuthenticator


@pytest.fixture()
def run_cli():
    return _run_cli
