"""
Credential & session lifecycle services.

Everything in here is framework-free: the Flask layer in ``api`` only builds an
``AuthService`` from its config and calls into it.
"""
from services.errors import (
    AuthError,
    AuthenticationFailure,
    ConfigurationError,
    FormatError,
    TransientStoreError,
)
from services.auth_service import AuthService

__all__ = [
    "AuthError",
    "AuthenticationFailure",
    "AuthService",
    "ConfigurationError",
    "FormatError",
    "TransientStoreError",
]
