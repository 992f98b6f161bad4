"""
Password hashing.

New hashes are PBKDF2-HMAC-SHA256 stored as ``{iterations}.{salt}.{hash}``
(standard base64), so a hash keeps verifying after the iteration count changes.
Hashes in Argon2 PHC format (``$argon2id$...``) from the earlier user table are
still accepted via argon2-cffi and reported by ``needs_rehash``.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from services.errors import FormatError

SALT_SIZE = 16  # 128 bit
HASH_SIZE = 32  # 256 bit
DEFAULT_ITERATIONS = 100_000
ARGON2_PREFIX = "$argon2"

_argon2 = Argon2Hasher()


class PasswordHasher:
    """PBKDF2 hasher with constant-time verification."""

    def __init__(self, iterations: int = DEFAULT_ITERATIONS):
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    def hash(self, password: str) -> str:
        """Hash a plaintext password with a fresh random salt."""
        salt = secrets.token_bytes(SALT_SIZE)
        derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, self.iterations, HASH_SIZE)
        salt_b64 = base64.b64encode(salt).decode("ascii")
        hash_b64 = base64.b64encode(derived).decode("ascii")
        return f"{self.iterations}.{salt_b64}.{hash_b64}"

    def verify(self, stored_hash: str, password: str) -> bool:
        """Verify a plaintext password against a stored hash.

        Raises FormatError when the stored value is not a hash this class knows.
        """
        if stored_hash.startswith(ARGON2_PREFIX):
            return self._verify_argon2(stored_hash, password)

        iterations, salt, target = self._parse(stored_hash)
        candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations, len(target))
        return hmac.compare_digest(candidate, target)

    def needs_rehash(self, stored_hash: str) -> bool:
        if stored_hash.startswith(ARGON2_PREFIX):
            return True
        iterations, _, _ = self._parse(stored_hash)
        return iterations < self.iterations

    @staticmethod
    def _parse(stored_hash: str) -> tuple[int, bytes, bytes]:
        parts = stored_hash.split(".")
        if len(parts) != 3:
            raise FormatError("Unexpected hash format. Should be '{iterations}.{salt}.{hash}'")
        try:
            iterations = int(parts[0])
            salt = base64.b64decode(parts[1], validate=True)
            target = base64.b64decode(parts[2], validate=True)
        except (ValueError, binascii.Error) as exc:
            raise FormatError("Stored password hash could not be decoded") from exc
        if iterations < 1 or not salt or not target:
            raise FormatError("Stored password hash has empty components")
        return iterations, salt, target

    @staticmethod
    def _verify_argon2(stored_hash: str, password: str) -> bool:
        try:
            return _argon2.verify(stored_hash, password)
        except VerifyMismatchError:
            return False
        except InvalidHashError as exc:
            raise FormatError("Stored argon2 hash is malformed") from exc
        except VerificationError:
            return False
