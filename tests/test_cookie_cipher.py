import base64
import json

import pytest
from werkzeug.http import parse_cookie

from services.errors import ConfigurationError
from services.settings import CookieSettings
from utils.cookie_cipher import CookieTransport
from utils.security import generate_refresh_token


@pytest.fixture
def cookie_settings():
    return CookieSettings(name="rt", max_age_hours=720, key=b"k" * 32, path="/api/v1/auth")


@pytest.fixture
def transport(cookie_settings):
    return CookieTransport(cookie_settings)


def test_round_trips_many_tokens(transport):
    for _ in range(10_000):
        token = generate_refresh_token()
        assert transport.unprotect(transport.protect(token)) == token


def test_each_seal_uses_a_fresh_nonce(transport):
    assert transport.protect("same") != transport.protect("same")


def test_value_has_three_url_safe_segments(transport):
    value = transport.protect(generate_refresh_token())
    parts = value.split(".")
    assert len(parts) == 3
    assert all("=" not in p and "+" not in p and "/" not in p for p in parts)


def test_any_single_character_change_is_rejected(transport):
    value = transport.protect(generate_refresh_token())
    for i, ch in enumerate(value):
        if ch == ".":
            continue
        replacement = "A" if ch != "A" else "B"
        mutated = value[:i] + replacement + value[i + 1:]
        assert transport.unprotect(mutated) is None, f"mutation at {i} accepted"


@pytest.mark.parametrize("value", [None, "", "abc", "a.b", "a.b.c.d", "!!.??.**", "..."])
def test_garbage_reads_as_no_cookie(transport, value):
    assert transport.unprotect(value) is None


def test_value_sealed_for_another_cookie_name_does_not_open(cookie_settings, transport):
    other = CookieTransport(
        CookieSettings(name="other", max_age_hours=1, key=cookie_settings.key)
    )
    assert other.unprotect(transport.protect("token")) is None


def test_value_sealed_with_another_key_does_not_open(transport):
    other = CookieTransport(CookieSettings(name="rt", max_age_hours=1, key=b"z" * 32))
    assert transport.unprotect(other.protect("token")) is None


def test_wrong_payload_version_is_rejected(transport):
    sealed = transport._aead.encrypt(
        b"\x00" * 12, json.dumps({"rt": "token", "v": 2}).encode(), transport._aad
    )
    encode = lambda raw: base64.urlsafe_b64encode(raw).rstrip(b"=").decode()  # noqa: E731
    value = ".".join([encode(b"\x00" * 12), encode(sealed[-16:]), encode(sealed[:-16])])
    assert transport.unprotect(value) is None


def test_key_must_be_32_bytes():
    with pytest.raises(ConfigurationError):
        CookieTransport(CookieSettings(name="rt", max_age_hours=1, key=b"short"))


def test_issue_cookie_attributes(transport):
    header = transport.issue_cookie("token-value")
    lowered = header.lower()
    assert header.startswith("rt=")
    assert "httponly" in lowered
    assert "secure" in lowered
    assert "samesite=lax" in lowered
    assert "max-age=2592000" in lowered
    assert "path=/api/v1/auth" in lowered

    value = parse_cookie(header.split(";", 1)[0])["rt"]
    assert transport.unprotect(value) == "token-value"


def test_read_cookie_from_request_header(transport):
    sealed = transport.protect("token-value")
    assert transport.read_cookie(f"theme=dark; rt={sealed}") == "token-value"
    assert transport.read_cookie("theme=dark") is None
    assert transport.read_cookie(None) is None


def test_delete_cookie_expires_immediately(transport):
    header = transport.delete_cookie().lower()
    assert header.startswith("rt=;") or header.startswith('rt="";')
    assert "max-age=0" in header
