"""Access token (JWT) issuance and the access+refresh token pair."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Callable, Dict, Optional

from models.base_model import utcnow
from models.stores import CredentialStore
from models.user import User
from services.refresh_tokens import RefreshTokenRotator
from services.settings import JwtSettings
from utils.security import create_access_token, decode_access_token, idp_for_issuer

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User


class TokenIssuer:
    def __init__(
        self,
        credentials: CredentialStore,
        rotator: RefreshTokenRotator,
        settings: JwtSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.credentials = credentials
        self.rotator = rotator
        self.settings = settings
        self.clock = clock

    def issue_for(self, user: User) -> TokenPair:
        """Open a new refresh chain for user and sign a fresh access token."""
        refresh_token = self.rotator.generate(user.id)
        return self._pair(user, refresh_token)

    def refresh(self, old_token: Optional[str]) -> Optional[TokenPair]:
        record = self.rotator.refresh(old_token)
        if record is None:
            return None
        user = self.credentials.find_by_id(record.user_id)
        if user is None:
            # account deleted while the chain was alive; do not mint
            logger.warning("Refresh for unknown user %s refused", record.user_id)
            self.rotator.revoke(record.token)
            return None
        return self._pair(user, record.token)

    def create_access_token(self, user: User) -> str:
        return create_access_token(
            subject=user.id,
            key=self.settings.key,
            issuer=self.settings.issuer,
            audience=self.settings.audience,
            expires_in=self.settings.expires_in_seconds,
            now=self.clock(),
            roles=user.roles or [],
            algorithm=self.settings.algorithm,
            extra_claims={
                "idp": idp_for_issuer(user.issuer),
                "preferred_username": user.username,
                "name": user.name,
            },
        )

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        return decode_access_token(
            token,
            key=self.settings.key,
            issuer=self.settings.issuer,
            audience=self.settings.audience,
            algorithm=self.settings.algorithm,
        )

    def _pair(self, user: User, refresh_token: str) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=refresh_token,
            expires_in=self.settings.expires_in_seconds,
            user=user,
        )
