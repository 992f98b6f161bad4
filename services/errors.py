"""
Error taxonomy for the credential & session core.

- AuthenticationFailure: anything the client should only ever see as a bare 401
- ConfigurationError: deployment mistakes (keys, thresholds, stored hash format)
- TransientStoreError: the backing store failed; surfaced as a server error, never retried here
"""


class AuthError(Exception):
    """Base class for every error raised by the auth core."""


class AuthenticationFailure(AuthError):
    """Credentials, lock state or token were not acceptable.

    The message is for server-side logs only; the HTTP layer never echoes it.
    """

    def __init__(self, reason: str = "Unauthorized"):
        super().__init__(reason)
        self.reason = reason


class ConfigurationError(AuthError):
    """Missing or inconsistent configuration."""


class FormatError(ConfigurationError):
    """A stored password hash does not have the expected layout."""


class TransientStoreError(AuthError):
    """A read or write against the credential / refresh token store failed."""
