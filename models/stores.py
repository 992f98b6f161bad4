"""
Store contracts the auth services are written against.

Two adapters implement both protocols:
- models/memory_storage.py: dict-backed, lock-guarded (tests, single-process dev)
- models/db_storage.py: SQLAlchemy-backed (durable)
create_app() picks one pair from STORAGE_BACKEND.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from models.refresh_token import RefreshToken, Tombstone
from models.user import User


class CredentialStore(Protocol):
    def find_by_username(self, username: str) -> Optional[User]:
        """Case-insensitive lookup."""
        ...

    def find_by_id(self, user_id: str) -> Optional[User]: ...

    def find_by_external_id(self, external_id: str) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def find_by_confirmation_token(self, token_hash: str) -> Optional[User]:
        """Lookup by the stored SHA-256 of an email confirmation token."""
        ...

    def find_by_reset_token(self, token_hash: str) -> Optional[User]: ...

    def insert(self, user: User) -> User: ...

    def update(self, user: User) -> User: ...

    def increment_failed_logins(self, user_id: str) -> int:
        """Atomically add one to failed_login_count and return the new value."""
        ...

    def migrate(self) -> None: ...


class RefreshTokenStore(Protocol):
    def create(self, record: RefreshToken) -> None: ...

    def get(self, token: str) -> Optional[RefreshToken]:
        """None for unknown or deleted tokens, never an error."""
        ...

    def delete(self, token: str) -> bool:
        """True when a record was removed."""
        ...

    def delete_all_for_user(self, user_id: str) -> int: ...

    def rotate(
        self,
        old_token: str,
        new_record: RefreshToken,
        tombstone: Optional[Tombstone] = None,
    ) -> bool:
        """Retire old_token and create new_record as one unit.

        The old record is deleted, or kept revoked when a tombstone is given.
        Succeeds only if old_token was still live (present, not revoked, not
        compromised); of several concurrent callers exactly one gets True.
        """
        ...

    def compromise_session(self, session_id: str, now: datetime) -> int:
        """Mark every link of a chain compromised and revoked."""
        ...

    def purge_expired(self, now: datetime) -> int: ...

    def migrate(self) -> None: ...
