"""
Account maintenance around the login core: federated upsert, local account
creation (seeding / bootstrap) and password change.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import re
from typing import Callable, Iterable, Optional

from models.base_model import utcnow
from models.stores import CredentialStore
from models.user import LOCAL_ISSUER, User
from utils.password_hasher import PasswordHasher

logger = logging.getLogger(__name__)

DEFAULT_ROLES = ("customer",)
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,}$")
PASSWORD_FORMAT_ERROR = (
    "Password must be at least 8 characters long and contain at least one uppercase letter, "
    "one lowercase letter, one digit, and one special character."
)


@dataclass(frozen=True)
class FederatedClaim:
    """Identity asserted by an upstream IdP whose token was already validated."""

    external_id: str
    issuer: str
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None


@dataclass(frozen=True)
class ChangePasswordResult:
    success: bool
    error: Optional[str] = None
    error_description: Optional[str] = None


class AccountService:
    def __init__(
        self,
        credentials: CredentialStore,
        hasher: PasswordHasher,
        clock: Callable[[], datetime] = utcnow,
        lock_enabled: bool = True,
    ):
        self.credentials = credentials
        self.hasher = hasher
        self.clock = clock
        self.lock_enabled = lock_enabled

    def register_federated(self, claim: FederatedClaim) -> User:
        if not claim.external_id or not claim.issuer:
            raise ValueError("federated claim needs an external id and an issuer")
        email = claim.email.strip().lower() if claim.email else None
        user = self.credentials.find_by_external_id(claim.external_id)
        username = self._free_username(claim.username or email or claim.external_id, user, claim)
        if user is None:
            user = User(
                username=username,
                email=email,
                name=claim.name,
                issuer=claim.issuer,
                external_id=claim.external_id,
                roles=list(DEFAULT_ROLES),
                # the IdP vouches for the address
                email_confirmed=email is not None,
            )
            logger.info("Registered federated account %s", user.id)
            return self.credentials.insert(user)

        user.issuer = claim.issuer
        user.email = email
        user.username = username
        user.name = claim.name
        return self.credentials.update(user)

    def _free_username(self, candidate: str, user: Optional[User], claim: FederatedClaim) -> str:
        """Usernames are unique across issuers; fall back to issuer|external_id on a clash."""
        holder = self.credentials.find_by_username(candidate)
        if holder is None or (user is not None and holder.id == user.id):
            return candidate
        return f"{claim.issuer}|{claim.external_id}"

    def create_local_user(
        self,
        username: str,
        password: str,
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
        roles: Iterable[str] = DEFAULT_ROLES,
        email_confirmed: bool = False,
    ) -> User:
        if self.credentials.find_by_username(username) is not None:
            raise ValueError("username already registered")
        user = User(
            username=username,
            email=email.strip().lower() if email else None,
            name=name,
            password_hash=self.hasher.hash(password),
            issuer=LOCAL_ISSUER,
            roles=list(roles),
            email_confirmed=email_confirmed,
        )
        return self.credentials.insert(user)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> ChangePasswordResult:
        user = self.credentials.find_by_id(user_id)
        if user is None:
            return ChangePasswordResult(False, "UserNotFound", "User was not found.")

        if self.lock_enabled:
            now = self.clock()
            if user.is_locked or (user.locked_until is not None and now < user.locked_until):
                return ChangePasswordResult(False, "AccountLocked", "Account is locked.")

        if not user.is_local:
            return ChangePasswordResult(
                False, "InvalidAccountType", "Cannot change password for federated accounts."
            )

        if not user.password_hash or not self.hasher.verify(user.password_hash, old_password):
            return ChangePasswordResult(False, "InvalidOldPassword", "Old password is incorrect.")

        if not PASSWORD_PATTERN.match(new_password or ""):
            return ChangePasswordResult(False, "InvalidPasswordFormat", PASSWORD_FORMAT_ERROR)

        user.password_hash = self.hasher.hash(new_password)
        self.credentials.update(user)
        logger.info("Password changed for user %s", user.id)
        return ChangePasswordResult(True)

    def seed_demo_users(self) -> None:
        """Local demo accounts for development; skipped when they already exist."""
        demo = (
            ("admin", "admin1!", "John Doe", ("customer", "admin")),
            ("customer", "customer1!", "Jane Doe", ("customer",)),
        )
        for username, password, name, roles in demo:
            if self.credentials.find_by_username(username) is None:
                self.create_local_user(username, password, name=name, roles=roles, email_confirmed=True)
                logger.info("Seeded demo user %s", username)
