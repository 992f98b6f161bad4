from models.base_model import Base, BaseModel, UTCDateTime
from sqlalchemy import Boolean, Column, Integer, String, JSON

LOCAL_ISSUER = "local"


class User(BaseModel, Base):
    """Account record; password_hash is absent for federated-only accounts."""

    __tablename__ = "users"
    __defaults__ = {
        "issuer": LOCAL_ISSUER,
        "roles": lambda: ["customer"],
        "is_locked": False,
        "failed_login_count": 0,
        "email_confirmed": False,
    }

    username = Column(String(255), nullable=False)
    normalized_username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    issuer = Column(String(255), nullable=False, default=LOCAL_ISSUER)
    roles = Column(JSON, nullable=False, default=lambda: ["customer"])
    external_id = Column(String(255), nullable=True, unique=True, index=True)
    last_login = Column(UTCDateTime, nullable=True)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_until = Column(UTCDateTime, nullable=True)
    failed_login_count = Column(Integer, nullable=False, default=0)
    email_confirmed = Column(Boolean, nullable=False, default=False)

    # SHA-256 hex of the one-time tokens sent in confirmation / reset links
    email_confirmation_token = Column(String(64), nullable=True, index=True)
    email_confirmation_token_expires_at = Column(UTCDateTime, nullable=True)
    reset_password_token = Column(String(64), nullable=True, index=True)
    reset_password_token_expires_at = Column(UTCDateTime, nullable=True)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.username and not getattr(self, "normalized_username", None):
            self.normalized_username = normalize_username(self.username)

    @property
    def is_local(self) -> bool:
        return (self.issuer or "").lower() == LOCAL_ISSUER

    def __repr__(self):
        return f"<User {self.id} {self.username!r}>"


def normalize_username(username: str) -> str:
    return username.strip().upper()
