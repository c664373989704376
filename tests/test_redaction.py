from passkey_demo.obs.redaction import redact_headers, redact_identifier


def test_redact_headers():
    headers = {
        "Authorization": "Bearer secret",
        "X-API-Key": "sk-12345678901234567890",
        "Cookie": "session=abc",
        "Set-Cookie": "session=abc",
        "Content-Type": "application/json",
        "User-Agent": "test-agent",
    }
    redacted = redact_headers(headers)

    assert redacted["Authorization"] == "[REDACTED]"
    assert redacted["X-API-Key"] == "[REDACTED]"
    assert redacted["Cookie"] == "[REDACTED]"
    assert redacted["Set-Cookie"] == "[REDACTED]"
    assert redacted["Content-Type"] == "application/json"
    assert redacted["User-Agent"] == "test-agent"

    # Test case insensitivity
    assert redact_headers({"authorization": "Bearer secret"})["authorization"] == "[REDACTED]"


def test_redact_headers_empty():
    assert redact_headers({}) == {}


def test_redact_identifier():
    assert redact_identifier("MTIzNDU2Nzg5MGFiY2RlZg") == "MTIzNG..."
    assert redact_identifier("abc") == "[REDACTED]"
    assert redact_identifier("") == "-"
    assert redact_identifier(None) == "-"
