"""Trusted-origin check used as the CSRF gate of the cookie (web-*) endpoints."""
from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

from services.errors import ConfigurationError


class OriginGuard:
    def __init__(self, trusted_host: str):
        normalized = _normalize(trusted_host)
        if not normalized:
            raise ConfigurationError("Origin host cannot be empty")
        self.trusted_host = normalized

    def validate(self, request_host: Optional[str]) -> Optional[str]:
        """None when allowed, otherwise the reason (server-side logs only)."""
        host = _normalize(request_host)
        if not host:
            return "Empty origin received"
        if host != self.trusted_host:
            return f"Origin {host} is not the trusted origin {self.trusted_host}"
        return None

    def is_allowed(self, request_host: Optional[str]) -> bool:
        return self.validate(request_host) is None


def host_from_header(value: Optional[str]) -> Optional[str]:
    """'https://app.example.com/x' -> 'app.example.com'; bare hosts pass through."""
    if not value or value.strip().lower() == "null":
        return None
    value = value.strip()
    if "://" not in value:
        return value
    return urlsplit(value).netloc or None


def _normalize(host: Optional[str]) -> str:
    return (host or "").strip().lower()
