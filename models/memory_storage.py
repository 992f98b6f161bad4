"""
In-memory store adapters.

Both keep detached copies so callers cannot change stored state without going
through update()/rotate(), which is how the SQL adapters behave as well.
A single lock per store covers each dict operation; nothing blocks while holding it.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Optional

from models.refresh_token import RefreshToken, Tombstone
from models.user import User, normalize_username


class InMemoryCredentialStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}

    def find_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        key = normalize_username(username)
        with self._lock:
            return self._first(lambda u: u.normalized_username == key)

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(str(user_id))
            return user.copy() if user else None

    def find_by_external_id(self, external_id: str) -> Optional[User]:
        if not external_id:
            return None
        with self._lock:
            return self._first(lambda u: u.external_id == external_id)

    def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        key = email.strip().lower()
        with self._lock:
            return self._first(lambda u: (u.email or "").lower() == key)

    def find_by_confirmation_token(self, token_hash: str) -> Optional[User]:
        if not token_hash:
            return None
        with self._lock:
            return self._first(lambda u: u.email_confirmation_token == token_hash)

    def find_by_reset_token(self, token_hash: str) -> Optional[User]:
        if not token_hash:
            return None
        with self._lock:
            return self._first(lambda u: u.reset_password_token == token_hash)

    def insert(self, user: User) -> User:
        with self._lock:
            if user.id in self._users:
                raise ValueError(f"user {user.id} already exists")
            clash = self._first(lambda u: u.normalized_username == user.normalized_username)
            if clash is not None:
                raise ValueError("username already registered")
            self._users[user.id] = user.copy()
        return user

    def update(self, user: User) -> User:
        with self._lock:
            if user.id not in self._users:
                raise KeyError(user.id)
            user.normalized_username = normalize_username(user.username)
            self._users[user.id] = user.copy()
        return user

    def increment_failed_logins(self, user_id: str) -> int:
        with self._lock:
            user = self._users[str(user_id)]
            user.failed_login_count = (user.failed_login_count or 0) + 1
            return user.failed_login_count

    def migrate(self) -> None:
        """Nothing to create for dicts."""

    def _first(self, predicate) -> Optional[User]:
        for user in self._users.values():
            if predicate(user):
                return user.copy()
        return None


class InMemoryRefreshTokenStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, RefreshToken] = {}

    def create(self, record: RefreshToken) -> None:
        with self._lock:
            if record.token in self._records:
                raise ValueError("refresh token collision")
            self._records[record.token] = record.copy()

    def get(self, token: str) -> Optional[RefreshToken]:
        with self._lock:
            record = self._records.get(token)
            return record.copy() if record else None

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._records.pop(token, None) is not None

    def delete_all_for_user(self, user_id: str) -> int:
        with self._lock:
            doomed = [t for t, r in self._records.items() if r.user_id == user_id]
            for token in doomed:
                del self._records[token]
            return len(doomed)

    def rotate(self, old_token: str, new_record: RefreshToken, tombstone: Optional[Tombstone] = None) -> bool:
        with self._lock:
            current = self._records.get(old_token)
            if current is None or current.is_terminal or new_record.token in self._records:
                return False
            if tombstone is None:
                del self._records[old_token]
            else:
                current.revoked_at = tombstone.revoked_at
                current.replaced_by_hash = tombstone.replaced_by_hash
            self._records[new_record.token] = new_record.copy()
            return True

    def compromise_session(self, session_id: str, now: datetime) -> int:
        with self._lock:
            count = 0
            for record in self._records.values():
                if record.session_id == session_id:
                    record.compromised = True
                    if record.revoked_at is None:
                        record.revoked_at = now
                    count += 1
            return count

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            doomed = [t for t, r in self._records.items() if r.is_expired(now)]
            for token in doomed:
                del self._records[token]
            return len(doomed)

    def migrate(self) -> None:
        """Nothing to create for dicts."""

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
