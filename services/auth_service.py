"""
AuthService: the one object the HTTP layer talks to.

It owns the wired components and exposes the login / refresh / logout
operations that return a TokenPair or None, plus the registration and
password-reset flows.
"""
from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Callable, Mapping, Optional

from models.base_model import utcnow
from models.stores import CredentialStore, RefreshTokenStore
from services.accounts import AccountService, ChangePasswordResult, FederatedClaim
from services.emails import EmailDispatcher, EmailSender, LogEmailSender
from services.login_policy import LoginPolicy
from services.refresh_tokens import RefreshTokenRotator
from services.registration import RegistrationResult, RegistrationService
from services.settings import AuthSettings
from services.token_issuer import TokenIssuer, TokenPair
from utils.cookie_cipher import CookieTransport
from utils.origin import OriginGuard
from utils.password_hasher import PasswordHasher

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        settings: AuthSettings,
        credentials: CredentialStore,
        refresh_tokens: RefreshTokenStore,
        clock: Callable[[], datetime] = utcnow,
        email_sender: Optional[EmailSender] = None,
    ):
        self.settings = settings
        self.credentials = credentials
        self.refresh_tokens = refresh_tokens
        self.hasher = PasswordHasher(settings.password_hash_iterations)
        self.login_policy = LoginPolicy(credentials, self.hasher, settings.login, clock)
        self.rotator = RefreshTokenRotator(refresh_tokens, settings.refresh, clock)
        self.issuer = TokenIssuer(credentials, self.rotator, settings.jwt, clock)
        self.accounts = AccountService(credentials, self.hasher, clock, settings.login.lock_enabled)
        self.cookies = CookieTransport(settings.cookie)
        self.origin_guard = OriginGuard(settings.origin_host)
        self.emails = EmailDispatcher(email_sender or LogEmailSender(), settings.email, clock)
        self.registration = RegistrationService(credentials, self.hasher, self.emails, settings.email, clock)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        credentials: CredentialStore,
        refresh_tokens: RefreshTokenStore,
        clock: Callable[[], datetime] = utcnow,
        email_sender: Optional[EmailSender] = None,
    ) -> "AuthService":
        return cls(AuthSettings.from_config(config), credentials, refresh_tokens, clock, email_sender)

    def authenticate(self, username: str, password: str) -> Optional[TokenPair]:
        user = self.login_policy.authenticate(username, password)
        if user is None:
            return None
        if self.settings.login.require_confirmed_email and user.is_local and not user.email_confirmed:
            logger.info("Login for unconfirmed account %s refused", user.id)
            return None
        return self.issuer.issue_for(user)

    def authenticate_federated(self, claim: FederatedClaim) -> Optional[TokenPair]:
        """Claim must come from an upstream IdP exchange that already checked it."""
        self.accounts.register_federated(claim)
        user = self.login_policy.authenticate_federated(claim.external_id)
        if user is None:
            return None
        return self.issuer.issue_for(user)

    def refresh(self, refresh_token: Optional[str]) -> Optional[TokenPair]:
        return self.issuer.refresh(refresh_token)

    def revoke(self, refresh_token: Optional[str], revoke_all: bool = False) -> None:
        self.rotator.revoke(refresh_token, revoke_all)

    def revoke_user(self, user_id: str) -> int:
        return self.rotator.revoke_user(user_id)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> ChangePasswordResult:
        result = self.accounts.change_password(user_id, old_password, new_password)
        if result.success:
            # sessions opened with the old password end here
            self.rotator.revoke_user(user_id)
        return result

    def register(self, email: str, password: str) -> RegistrationResult:
        return self.registration.register(email, password)

    def resend_confirmation(self, email: str) -> bool:
        return self.registration.resend_confirmation(email)

    def confirm_email(self, token: Optional[str]) -> RegistrationResult:
        return self.registration.confirm_email(token)

    def send_reset_password(self, email: str) -> bool:
        return self.registration.send_reset_password(email)

    def reset_password(self, token: Optional[str], new_password: str) -> RegistrationResult:
        result = self.registration.reset_password(token, new_password)
        if result.success:
            self.rotator.revoke_user(result.user_id)
        return result

    def decode_access_token(self, token: str) -> dict:
        return self.issuer.decode_access_token(token)
