"""
Local sign-up with email confirmation, and the password-reset token flow.

Confirmation and reset tokens go out only inside emailed links; the account
row keeps their SHA-256, so a leaked table does not hand out working links.
register() and the send-* calls answer the same way whether or not the
address is known.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Callable, Optional
from urllib.parse import urlencode

from models.base_model import utcnow
from models.stores import CredentialStore
from models.user import LOCAL_ISSUER, User
from services.accounts import DEFAULT_ROLES, PASSWORD_FORMAT_ERROR, PASSWORD_PATTERN
from services.emails import EmailDispatcher
from services.settings import EmailSettings
from utils.password_hasher import PasswordHasher
from utils.security import generate_email_token, token_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    error: Optional[str] = None
    error_description: Optional[str] = None
    user_id: Optional[str] = None


def _failure(error: str, description: str) -> RegistrationResult:
    return RegistrationResult(False, error, description)


def _link(base_url: str, token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': token})}"


class RegistrationService:
    def __init__(
        self,
        credentials: CredentialStore,
        hasher: PasswordHasher,
        emails: EmailDispatcher,
        settings: EmailSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.credentials = credentials
        self.hasher = hasher
        self.emails = emails
        self.settings = settings
        self.clock = clock

    def register(self, email: str, password: str) -> RegistrationResult:
        """Create an unconfirmed local account (username = email) and mail its confirmation link.

        A confirmed or federated owner of the address gets the same success
        answer and no mail. An unconfirmed one takes the new password and a
        fresh link.
        """
        if not PASSWORD_PATTERN.match(password or ""):
            return _failure("InvalidPasswordFormat", PASSWORD_FORMAT_ERROR)

        email = email.strip().lower()
        user = self.credentials.find_by_email(email)
        if user is not None and (user.email_confirmed or not user.is_local):
            logger.info("Registration for an address already in use by user %s", user.id)
            return RegistrationResult(True)

        if user is None:
            if self.credentials.find_by_username(email) is not None:
                logger.info("Registration for an address taken as a username")
                return RegistrationResult(True)
            user = User(
                username=email,
                email=email,
                password_hash=self.hasher.hash(password),
                issuer=LOCAL_ISSUER,
                roles=list(DEFAULT_ROLES),
                email_confirmed=False,
            )
            user = self.credentials.insert(user)
            logger.info("Registered local account %s", user.id)
        else:
            user.password_hash = self.hasher.hash(password)
            user = self.credentials.update(user)

        self._send_confirmation(user)
        return RegistrationResult(True, user_id=user.id)

    def resend_confirmation(self, email: str) -> bool:
        user = self.credentials.find_by_email(email)
        if user is None or user.email_confirmed or not user.is_local:
            return False
        return self._send_confirmation(user)

    def confirm_email(self, token: Optional[str]) -> RegistrationResult:
        if not token or not token.strip():
            return _failure("InvalidToken", "Token is required.")

        user = self.credentials.find_by_confirmation_token(token_hash(token.strip()))
        if user is None:
            return _failure("InvalidToken", "Invalid confirmation token.")
        if user.email_confirmed:
            return _failure("AlreadyConfirmed", "Email has already been confirmed.")
        expires_at = user.email_confirmation_token_expires_at
        if expires_at is None or self.clock() > expires_at:
            return _failure("TokenExpired", "Confirmation token has expired.")

        user.email_confirmed = True
        user.email_confirmation_token = None
        user.email_confirmation_token_expires_at = None
        self.credentials.update(user)
        logger.info("Email confirmed for user %s", user.id)
        return RegistrationResult(True, user_id=user.id)

    def send_reset_password(self, email: str) -> bool:
        user = self.credentials.find_by_email(email)
        if user is None or not user.email_confirmed or not user.is_local:
            return False

        token = generate_email_token()
        if not self.emails.send_reset_password(user, _link(self.settings.reset_password_url, token)):
            return False
        user.reset_password_token = token_hash(token)
        user.reset_password_token_expires_at = self.clock() + timedelta(
            minutes=self.settings.reset_token_minutes
        )
        self.credentials.update(user)
        return True

    def reset_password(self, token: Optional[str], new_password: str) -> RegistrationResult:
        if not token or not token.strip():
            return _failure("InvalidToken", "Reset password token is required.")

        user = self.credentials.find_by_reset_token(token_hash(token.strip()))
        if user is None or not user.is_local:
            return _failure("InvalidToken", "Invalid reset password token.")
        expires_at = user.reset_password_token_expires_at
        if expires_at is None or self.clock() > expires_at:
            return _failure("TokenExpired", "Reset password token has expired.")
        # the token stays valid until a password is accepted
        if not PASSWORD_PATTERN.match(new_password or ""):
            return _failure("InvalidPasswordFormat", PASSWORD_FORMAT_ERROR)

        user.password_hash = self.hasher.hash(new_password)
        user.reset_password_token = None
        user.reset_password_token_expires_at = None
        self.credentials.update(user)
        logger.info("Password reset for user %s", user.id)
        return RegistrationResult(True, user_id=user.id)

    def _send_confirmation(self, user: User) -> bool:
        """A new token replaces the stored one only once its mail went out."""
        token = generate_email_token()
        if not self.emails.send_registration(user, _link(self.settings.confirm_url, token)):
            return False
        user.email_confirmation_token = token_hash(token)
        user.email_confirmation_token_expires_at = self.clock() + timedelta(
            hours=self.settings.confirmation_token_hours
        )
        self.credentials.update(user)
        return True
