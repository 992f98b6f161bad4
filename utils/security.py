"""
security helpers:
- JWT creation/verification via PyJWT (HS256, pre-shared key)
- JTI and refresh token generation
- token fingerprints for logs and chain pointers
- issuer -> IdP tag mapping
"""
from __future__ import annotations

import base64
import hashlib
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlsplit

import jwt

from services.errors import AuthenticationFailure

REFRESH_TOKEN_BYTES = 32  # 256 bit
# issuer host (or a parent domain of it) -> IdP tag
KNOWN_IDP_DOMAINS = {
    "apple": ("appleid.apple.com",),
    "google": ("accounts.google.com", "google.com"),
    "microsoft": ("login.microsoftonline.com", "sts.windows.net", "login.live.com"),
}
LOCAL_IDP = "local"


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID)."""
    return str(uuid.uuid4())


def generate_refresh_token() -> str:
    """Opaque refresh token: 32 random bytes, standard base64."""
    return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")


def generate_session_id() -> str:
    return uuid.uuid4().hex


def generate_email_token() -> str:
    """One-time token for confirmation and reset links (URL-safe, 256 bit)."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


def token_hash(token: str) -> str:
    """SHA-256 hex digest; what a rotated link stores as replaced_by_hash."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_fingerprint(token: Optional[str]) -> str:
    """Short, non-reversible id for log lines. Raw tokens are never logged."""
    if not token:
        return "-"
    return token_hash(token)[:12]


def idp_for_issuer(issuer: Optional[str]) -> str:
    """Map an account issuer to a normalized IdP tag.

    Matching is on the issuer's host: "https://accounts.google.com" -> "google",
    while "https://notgoogle.example" is not google. Empty or "local" -> "local";
    anything unrecognized is passed through lower-cased.
    """
    if not issuer or issuer.strip().lower() == LOCAL_IDP:
        return LOCAL_IDP
    lowered = issuer.strip().lower()
    if lowered in KNOWN_IDP_DOMAINS:
        return lowered
    host = urlsplit(lowered).hostname if "://" in lowered else lowered.split("/", 1)[0]
    for idp, domains in KNOWN_IDP_DOMAINS.items():
        if host and any(host == d or host.endswith("." + d) for d in domains):
            return idp
    return lowered


def create_access_token(
    *,
    subject: str,
    key: bytes,
    issuer: str,
    audience: str,
    expires_in: int,
    now: datetime,
    roles: Iterable[str] = (),
    algorithm: str = "HS256",
    jti: Optional[str] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    payload: Dict[str, Any] = {
        "iss": issuer,
        "aud": audience,
        "sub": str(subject),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        "jti": jti or generate_jti(),
        "roles": list(roles),
    }
    if extra_claims:
        payload.update({k: v for k, v in extra_claims.items() if v is not None})
    return jwt.encode(payload, key, algorithm=algorithm)


def decode_access_token(
    token: str, *, key: bytes, issuer: str, audience: str, algorithm: str = "HS256"
) -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises AuthenticationFailure on a bad signature,
    expiry, wrong issuer/audience or missing required claims.
    """
    try:
        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            issuer=issuer,
            audience=audience,
            options={"require": ["exp", "iss", "aud", "sub", "jti"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailure("Token expired")
    except jwt.InvalidTokenError as exc:
        raise AuthenticationFailure(f"Invalid token: {exc}")
