"""
Refresh token cookie transport.

The refresh token travels to browsers inside an AES-GCM sealed cookie:

    nonce.tag.ciphertext      (unpadded URL-safe base64 segments)

with the JSON payload {"rt": <refresh token>, "v": 1}. The cookie name and a
purpose string are bound as associated data, so a value cut from another
cookie does not open. Anything that fails to open reads as "no cookie".
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from werkzeug.http import dump_cookie, parse_cookie

from services.errors import ConfigurationError
from services.settings import CookieSettings

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1
PURPOSE = b"Tokens.Cookie:v1"
NONCE_SIZE = 12  # 96 bit
TAG_SIZE = 16


class CookieTransport:
    """Seal/open refresh tokens and build/read the cookie header strings."""

    def __init__(self, settings: CookieSettings):
        if len(settings.key) != 32:
            raise ConfigurationError("Cookie key must be 32 bytes")
        self.settings = settings
        self._aead = AESGCM(settings.key)
        self._aad = PURPOSE + b"|" + settings.name.encode("utf-8")

    @property
    def name(self) -> str:
        return self.settings.name

    def protect(self, refresh_token: str) -> str:
        payload = json.dumps({"rt": refresh_token, "v": PAYLOAD_VERSION}, separators=(",", ":"))
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, payload.encode("utf-8"), self._aad)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return ".".join(_b64encode(part) for part in (nonce, tag, ciphertext))

    def unprotect(self, value: Optional[str]) -> Optional[str]:
        """Return the refresh token, or None for anything that does not open cleanly."""
        if not value:
            return None
        parts = value.split(".")
        if len(parts) != 3:
            logger.warning("Refresh cookie rejected: malformed value")
            return None
        try:
            nonce, tag, ciphertext = (_b64decode(part) for part in parts)
        except ValueError:
            logger.warning("Refresh cookie rejected: bad encoding")
            return None
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            logger.warning("Refresh cookie rejected: bad segment size")
            return None

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, self._aad)
        except InvalidTag:
            logger.warning("Failed to unprotect refresh token")
            return None

        try:
            payload = json.loads(plaintext)
        except ValueError:
            logger.warning("Refresh cookie rejected: payload is not JSON")
            return None
        if not isinstance(payload, dict) or payload.get("v") != PAYLOAD_VERSION:
            logger.warning("Refresh cookie rejected: unsupported payload version")
            return None
        token = payload.get("rt")
        return token if isinstance(token, str) and token else None

    def issue_cookie(self, refresh_token: str) -> str:
        """Set-Cookie header value carrying the sealed refresh token."""
        return dump_cookie(
            self.settings.name,
            self.protect(refresh_token),
            max_age=int(self.settings.max_age_hours * 3600),
            path=self.settings.path,
            domain=self.settings.domain,
            secure=True,
            httponly=True,
            samesite="Lax",
        )

    def delete_cookie(self) -> str:
        """Set-Cookie header value that clears the refresh cookie."""
        return dump_cookie(
            self.settings.name,
            "",
            max_age=0,
            expires=0,
            path=self.settings.path,
            domain=self.settings.domain,
            secure=True,
            httponly=True,
            samesite="Lax",
        )

    def read_cookie(self, cookie_header: Optional[str]) -> Optional[str]:
        """Refresh token from a raw Cookie request header, or None."""
        if not cookie_header:
            return None
        return self.unprotect(parse_cookie(cookie_header).get(self.settings.name))


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    """Strict decode: URL-safe alphabet only, and only the canonical spelling of the bytes."""
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64 segment") from exc
    if _b64encode(raw) != segment:
        raise ValueError("non-canonical base64 segment")
    return raw
