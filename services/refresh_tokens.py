"""
Refresh token chains.

Each login opens a chain (session_id, index 1). Every successful refresh
retires the presented link and creates index+1 in one store operation, so a
link can be exchanged exactly once. Links end by expiry, by the session age
ceiling, by logout, or (with revoke_chain_on_reuse) by replay detection:

    Active --refresh--> Rotated        (deleted, or kept as a tombstone)
    Active --time-----> Expired        (deleted when presented)
    Active --logout---> Revoked        (deleted)
    Rotated --replay--> Compromised    (whole chain, tombstone mode only)
"""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Callable, Optional

from models.base_model import utcnow
from models.refresh_token import RefreshToken, Tombstone
from models.stores import RefreshTokenStore
from services.settings import RefreshTokenSettings
from utils.security import generate_refresh_token, generate_session_id, token_fingerprint, token_hash

logger = logging.getLogger(__name__)


class RefreshTokenRotator:
    def __init__(
        self,
        store: RefreshTokenStore,
        settings: RefreshTokenSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock

    def generate(self, user_id: str) -> str:
        """Open a new chain for user_id and return its first token."""
        now = self.clock()
        record = self._new_record(
            user_id=user_id,
            session_id=generate_session_id(),
            index=1,
            session_created_at=now,
            now=now,
        )
        self.store.create(record)
        return record.token

    def refresh(self, token: Optional[str]) -> Optional[RefreshToken]:
        """Exchange a live token for the next link of its chain; None on any failure."""
        if not token:
            return None
        record = self.store.get(token)
        if record is None:
            logger.warning("Refresh token not found (fp=%s)", token_fingerprint(token))
            return None

        now = self.clock()
        if record.is_expired(now):
            self.store.delete(token)
            logger.info("Refresh token expired (fp=%s)", token_fingerprint(token))
            return None

        if record.compromised:
            logger.warning(
                "Refresh token from compromised session %s presented (fp=%s)",
                record.session_id,
                token_fingerprint(token),
            )
            return None

        if record.revoked_at is not None:
            self._handle_reuse(record, now)
            return None

        if self._session_too_old(record, now):
            self.store.delete(token)
            logger.info("Session %s reached its maximum age", record.session_id)
            return None

        new_record = self._new_record(
            user_id=record.user_id,
            session_id=record.session_id,
            index=record.index + 1,
            session_created_at=record.session_created_at,
            now=now,
        )
        tombstone = None
        if self.settings.revoke_chain_on_reuse:
            tombstone = Tombstone(revoked_at=now, replaced_by_hash=token_hash(new_record.token))

        if not self.store.rotate(token, new_record, tombstone):
            # lost a race against another refresh of the same token
            logger.warning("Refresh token already rotated (fp=%s)", token_fingerprint(token))
            return None

        logger.info("Rotated session %s to index %d", new_record.session_id, new_record.index)
        return new_record

    def revoke(self, token: Optional[str], revoke_all: bool = False) -> None:
        """Single-device logout, or every session of the token's owner when revoke_all."""
        if not token or not token.strip():
            return
        if revoke_all:
            record = self.store.get(token)
            if record is not None:
                removed = self.store.delete_all_for_user(record.user_id)
                logger.info("Revoked %d refresh tokens for user %s", removed, record.user_id)
                return
        self.store.delete(token)

    def revoke_user(self, user_id: str) -> int:
        removed = self.store.delete_all_for_user(user_id)
        logger.info("Revoked %d refresh tokens for user %s", removed, user_id)
        return removed

    def purge_expired(self) -> int:
        return self.store.purge_expired(self.clock())

    def _handle_reuse(self, record: RefreshToken, now: datetime) -> None:
        # only reachable in tombstone mode: delete-on-rotate leaves nothing to find
        affected = self.store.compromise_session(record.session_id, now)
        logger.warning(
            "Refresh token reuse detected for user %s; session %s revoked (%d links)",
            record.user_id,
            record.session_id,
            affected,
        )

    def _session_too_old(self, record: RefreshToken, now: datetime) -> bool:
        max_age = self.settings.session_max_age_hours
        if max_age <= 0:
            return False
        return now - record.session_created_at >= timedelta(hours=max_age)

    def _new_record(
        self,
        *,
        user_id: str,
        session_id: str,
        index: int,
        session_created_at: datetime,
        now: datetime,
    ) -> RefreshToken:
        return RefreshToken(
            token=generate_refresh_token(),
            user_id=user_id,
            session_id=session_id,
            index=index,
            session_created_at=session_created_at,
            created_at=now,
            expires_at=now + timedelta(hours=self.settings.expires_in_hours),
        )
