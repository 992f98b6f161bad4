"""
RefreshToken model: one link of a rotating refresh-token chain.
Fields:
- token (primary key): the opaque value handed to the client
- user_id (String(36)) - FK to users.id
- session_id: shared by every link of one login session
- index: 1 for the first link, +1 per rotation
- session_created_at: start of the session, copied along the chain
- created_at, expires_at
- revoked_at / replaced_by_hash: set when a link is kept as a rotated tombstone
- compromised: set on the whole chain once a replay was detected
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from models.base_model import Base, UTCDateTime


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(32), nullable=False, index=True)
    index = Column(Integer, nullable=False, default=1)
    session_created_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    revoked_at = Column(UTCDateTime, nullable=True)
    replaced_by_hash = Column(String(64), nullable=True)
    compromised = Column(Boolean, nullable=False, default=False)

    def __init__(self, **kwargs):
        kwargs.setdefault("revoked_at", None)
        kwargs.setdefault("replaced_by_hash", None)
        kwargs.setdefault("compromised", False)
        super().__init__(**kwargs)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def is_terminal(self) -> bool:
        return self.compromised or self.revoked_at is not None

    def copy(self) -> "RefreshToken":
        """Detached copy; in-memory stores hand these out instead of their own rows."""
        return RefreshToken(**{c.name: getattr(self, c.name) for c in self.__table__.columns})

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} session={self.session_id} index={self.index}>"


@dataclass(frozen=True)
class Tombstone:
    """How a rotated link is kept when replay detection is on."""

    revoked_at: datetime
    replaced_by_hash: str
