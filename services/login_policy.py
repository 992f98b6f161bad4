"""
Password and federated login with failed-attempt lockout.

Every refusal is a bare None; callers cannot tell an unknown username from a
wrong password or a locked account.
"""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Callable, Optional

from models.base_model import utcnow
from models.stores import CredentialStore
from models.user import User
from services.settings import LoginSettings
from utils.password_hasher import PasswordHasher

logger = logging.getLogger(__name__)


class LoginPolicy:
    def __init__(
        self,
        credentials: CredentialStore,
        hasher: PasswordHasher,
        settings: LoginSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.credentials = credentials
        self.hasher = hasher
        self.settings = settings
        self.clock = clock

    def is_locked(self, user: User, now: Optional[datetime] = None) -> bool:
        if not self.settings.lock_enabled:
            return False
        now = now or self.clock()
        if user.is_locked:
            return True
        return user.locked_until is not None and now < user.locked_until

    def authenticate(self, username: str, password: str) -> Optional[User]:
        user = self.credentials.find_by_username(username)
        if user is None:
            return None

        now = self.clock()
        if self.is_locked(user, now):
            logger.info("Login refused for locked account %s", user.id)
            return None

        if not user.password_hash or not user.is_local:
            # federated accounts never verify a password
            return None

        if not self.hasher.verify(user.password_hash, password):
            self._register_failure(user, now)
            return None

        user.failed_login_count = 0
        user.locked_until = None
        user.last_login = now
        if self.hasher.needs_rehash(user.password_hash):
            user.password_hash = self.hasher.hash(password)
            logger.info("Upgraded password hash for user %s", user.id)
        return self.credentials.update(user)

    def authenticate_federated(self, external_id: str) -> Optional[User]:
        user = self.credentials.find_by_external_id(external_id)
        if user is None:
            return None

        now = self.clock()
        if self.is_locked(user, now):
            logger.info("Federated login refused for locked account %s", user.id)
            return None

        user.last_login = now
        return self.credentials.update(user)

    def _register_failure(self, user: User, now: datetime) -> None:
        if not self.settings.lock_enabled:
            return
        count = self.credentials.increment_failed_logins(user.id)
        user.failed_login_count = count

        if count >= self.settings.max_failed_password_login_attempts:
            user.is_locked = True
            logger.warning("Account %s locked after %d failed logins", user.id, count)
        elif count >= self.settings.lockout_starts_after_attempts:
            user.locked_until = now + timedelta(minutes=self.settings.account_lock_duration_minutes)
            logger.warning(
                "Account %s locked until %s after %d failed logins",
                user.id,
                user.locked_until.isoformat(),
                count,
            )
        self.credentials.update(user)
