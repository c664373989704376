"""HTTP tests for the passkey routes, error mapping and app wiring."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from passkey_demo.app import create_app
from passkey_demo.errors import StorageUnavailable


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


def _register(client, authenticator):
    start = client.post("/passkey/register")
    assert start.status_code == 200, start.text
    body = start.json()
    return client.post(
        "/passkey/register/verify",
        json={"flow_id": body["flow_id"], "credential": authenticator.create(body["options"])},
    )


def _authenticate(client, authenticator, **kwargs):
    start = client.post("/passkey/authenticate")
    assert start.status_code == 200, start.text
    body = start.json()
    return client.post(
        "/passkey/authenticate/verify",
        json={
            "flow_id": body["flow_id"],
            "credential": authenticator.get(body["options"], **kwargs),
        },
    )


class TestDefaultRoutes:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Passkey Demo"}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_trace_id_echoed(self, client):
        resp = client.get("/health", headers={"x-trace-id": "abc123"})
        assert resp.headers["X-Trace-Id"] == "abc123"

    def test_trace_id_generated(self, client):
        assert len(client.get("/health").headers["X-Trace-Id"]) == 32


class TestCeremonyRoutes:
    def test_register_and_authenticate(self, client, authenticator):
        registered = _register(client, authenticator)
        assert registered.status_code == 201, registered.text
        user_id = registered.json()["user_id"]
        assert registered.json()["verified"] is True

        authenticated = _authenticate(client, authenticator)
        assert authenticated.status_code == 200, authenticated.text
        assert authenticated.json() == {"verified": True, "user_id": user_id}

    def test_start_returns_options(self, client):
        body = client.post("/passkey/register").json()
        assert body["flow_id"]
        assert body["options"]["rp"]["id"] == "localhost"
        assert body["options"]["challenge"]

    def test_unknown_flow(self, client, authenticator):
        options = client.post("/passkey/register").json()["options"]
        resp = client.post(
            "/passkey/register/verify",
            json={"flow_id": "nope", "credential": authenticator.create(options)},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "CHALLENGE_MISSING"

    def test_failed_verification(self, client, make_authenticator):
        resp = _register(client, make_authenticator(origin="https://evil.example"))
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "VERIFICATION_FAILED"

    def test_duplicate_registration(self, client, authenticator):
        assert _register(client, authenticator).status_code == 201
        resp = _register(client, authenticator)
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "DUPLICATE_CREDENTIAL"

    def test_unknown_credential(self, client, make_authenticator):
        resp = _authenticate(client, make_authenticator())
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "CREDENTIAL_NOT_FOUND"

    def test_replay(self, client, authenticator):
        _register(client, authenticator)
        assert _authenticate(client, authenticator).status_code == 200
        resp = _authenticate(client, authenticator, sign_count=1)
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "REPLAY_DETECTED"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"flow_id": "x"},
            {"flow_id": "x", "credential": {"id": "abc", "rawId": "abc", "response": {}}},
            {
                "flow_id": "x",
                "credential": {
                    "id": "not base64url!",
                    "rawId": "abc",
                    "response": {"clientDataJSON": "abc", "attestationObject": "abc"},
                },
            },
        ],
    )
    def test_malformed_payload(self, client, payload):
        assert client.post("/passkey/register/verify", json=payload).status_code == 422

    def test_storage_unavailable(self, client, app, monkeypatch):
        async def _down(*args, **kwargs):
            raise StorageUnavailable()

        monkeypatch.setattr(app.state.ceremonies.challenges, "issue", _down)
        resp = client.post("/passkey/authenticate")
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "STORAGE_UNAVAILABLE"
