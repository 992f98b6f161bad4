"""
Typed settings for the auth services.

``AuthSettings.from_config`` reads the flat Flask config mapping (see api/config.py)
and fails fast with ConfigurationError, so a bad deployment dies in create_app()
instead of on the first login.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from services.errors import ConfigurationError

MIN_JWT_KEY_BYTES = 32
COOKIE_KEY_BYTES = 32


@dataclass(frozen=True)
class JwtSettings:
    key: bytes
    issuer: str
    audience: str
    expires_in_seconds: int
    algorithm: str = "HS256"


@dataclass(frozen=True)
class RefreshTokenSettings:
    expires_in_hours: float
    session_max_age_hours: float = 0
    revoke_chain_on_reuse: bool = False


@dataclass(frozen=True)
class LoginSettings:
    lockout_starts_after_attempts: int
    max_failed_password_login_attempts: int
    account_lock_duration_minutes: int
    lock_enabled: bool = True
    require_confirmed_email: bool = True


@dataclass(frozen=True)
class CookieSettings:
    name: str
    max_age_hours: float
    key: bytes
    path: str = "/"
    domain: Optional[str] = None


@dataclass(frozen=True)
class EmailSettings:
    sender_address: str
    confirm_url: str
    reset_password_url: str
    confirmation_token_hours: float = 24
    reset_token_minutes: int = 30
    max_per_day: int = 5
    resend_cooldown_seconds: int = 60
    registration_subject: str = "Confirm your email"
    reset_password_subject: str = "Reset your password"


@dataclass(frozen=True)
class AuthSettings:
    jwt: JwtSettings
    refresh: RefreshTokenSettings
    login: LoginSettings
    cookie: CookieSettings
    origin_host: str
    password_hash_iterations: int
    email: EmailSettings

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AuthSettings":
        jwt_key = _b64_key(config, "JWT_KEY")
        if len(jwt_key) < MIN_JWT_KEY_BYTES:
            raise ConfigurationError(f"JWT_KEY must decode to at least {MIN_JWT_KEY_BYTES} bytes")

        cookie_key = _b64_key(config, "COOKIE_KEY")
        if len(cookie_key) != COOKIE_KEY_BYTES:
            raise ConfigurationError(f"COOKIE_KEY must decode to exactly {COOKIE_KEY_BYTES} bytes")

        jwt = JwtSettings(
            key=jwt_key,
            issuer=_required(config, "JWT_ISSUER"),
            audience=_required(config, "JWT_AUDIENCE"),
            expires_in_seconds=_positive_int(config, "JWT_EXPIRES_SECONDS"),
        )
        refresh = RefreshTokenSettings(
            expires_in_hours=_positive_float(config, "RT_EXPIRES_HOURS"),
            session_max_age_hours=float(config.get("RT_SESSION_MAX_AGE_HOURS") or 0),
            revoke_chain_on_reuse=_flag(config.get("RT_REVOKE_CHAIN_ON_REUSE", False)),
        )
        if refresh.session_max_age_hours < 0:
            raise ConfigurationError("RT_SESSION_MAX_AGE_HOURS cannot be negative")

        login = LoginSettings(
            lockout_starts_after_attempts=_positive_int(config, "LOGIN_LOCKOUT_STARTS_AFTER"),
            max_failed_password_login_attempts=_positive_int(config, "LOGIN_MAX_FAILED_ATTEMPTS"),
            account_lock_duration_minutes=_positive_int(config, "LOGIN_LOCK_DURATION_MINUTES"),
            lock_enabled=_flag(config.get("LOGIN_LOCK_ENABLED", True)),
            require_confirmed_email=_flag(config.get("LOGIN_REQUIRE_CONFIRMED_EMAIL", True)),
        )
        if login.lockout_starts_after_attempts > login.max_failed_password_login_attempts:
            raise ConfigurationError(
                "LOGIN_LOCKOUT_STARTS_AFTER must not exceed LOGIN_MAX_FAILED_ATTEMPTS"
            )

        cookie = CookieSettings(
            name=_required(config, "COOKIE_NAME"),
            max_age_hours=_positive_float(config, "COOKIE_MAX_AGE_HOURS"),
            key=cookie_key,
            path=config.get("COOKIE_PATH") or "/",
            domain=config.get("COOKIE_DOMAIN") or None,
        )

        email = EmailSettings(
            sender_address=_required(config, "EMAIL_FROM"),
            confirm_url=_required(config, "EMAIL_CONFIRM_URL"),
            reset_password_url=_required(config, "RESET_PASSWORD_URL"),
            confirmation_token_hours=_positive_float(config, "EMAIL_CONFIRMATION_TOKEN_HOURS"),
            reset_token_minutes=_positive_int(config, "RESET_PASSWORD_TOKEN_MINUTES"),
            max_per_day=_positive_int(config, "EMAIL_MAX_PER_DAY"),
            resend_cooldown_seconds=int(config.get("EMAIL_RESEND_COOLDOWN_SECONDS") or 0),
        )
        if email.resend_cooldown_seconds < 0:
            raise ConfigurationError("EMAIL_RESEND_COOLDOWN_SECONDS cannot be negative")

        return cls(
            jwt=jwt,
            refresh=refresh,
            login=login,
            cookie=cookie,
            origin_host=_required(config, "ORIGIN_HOST"),
            password_hash_iterations=_positive_int(config, "PASSWORD_HASH_ITERATIONS"),
            email=email,
        )


def _required(config: Mapping[str, Any], key: str) -> str:
    value = config.get(key)
    if value is None or not str(value).strip():
        raise ConfigurationError(f"{key} is required and cannot be empty")
    return str(value).strip()


def _b64_key(config: Mapping[str, Any], key: str) -> bytes:
    raw = _required(config, key)
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        # never include the value itself
        raise ConfigurationError(f"{key} is not valid base64") from exc


def _positive_int(config: Mapping[str, Any], key: str) -> int:
    try:
        value = int(config.get(key))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer") from exc
    if value <= 0:
        raise ConfigurationError(f"{key} must be a positive value")
    return value


def _positive_float(config: Mapping[str, Any], key: str) -> float:
    try:
        value = float(config.get(key))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be a number") from exc
    if value <= 0:
        raise ConfigurationError(f"{key} must be greater than 0")
    return value


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
