"""
SQLAlchemy-backed store adapters.

DBStorage owns the engine and a thread-local scoped_session; the two store
classes share it. Every write commits or rolls back before returning, and
SQLAlchemy failures surface as TransientStoreError.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.base_model import Base
from models.refresh_token import RefreshToken, Tombstone
from models.user import User, normalize_username
from services.errors import TransientStoreError

logger = logging.getLogger(__name__)


class DBStorage:
    __engine = None
    __session = None

    def __init__(self, database_url: str, echo: bool = False):
        """Initialize engine for the given URL"""
        kwargs = {"echo": echo}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise each thread sees an empty database
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True
        self.__engine = create_engine(database_url, **kwargs)

        # Enable SQLite foreign keys (needed for ON DELETE CASCADE)
        if self.__engine.url.get_backend_name() == "sqlite":
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    def reload(self):
        """Create tables and start session"""
        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    def close(self):
        """Remove session (for API teardown)"""
        if self.__session is not None:
            self.__session.remove()

    def get_session(self):
        if self.__session is None:
            self.reload()
        return self.__session

    @contextmanager
    def transaction(self):
        """Yield the current session; commit on success, roll back and wrap on failure."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Store operation failed")
            raise TransientStoreError("credential store unavailable") from exc

    @contextmanager
    def reading(self):
        session = self.get_session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Store read failed")
            raise TransientStoreError("credential store unavailable") from exc


class SQLCredentialStore:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def find_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        with self._storage.reading() as session:
            return session.query(User).filter(User.normalized_username == normalize_username(username)).populate_existing().first()

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._storage.reading() as session:
            return session.query(User).filter(User.id == str(user_id)).populate_existing().first()

    def find_by_external_id(self, external_id: str) -> Optional[User]:
        if not external_id:
            return None
        with self._storage.reading() as session:
            return session.query(User).filter(User.external_id == external_id).populate_existing().first()

    def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        with self._storage.reading() as session:
            return session.query(User).filter(User.email == email.strip().lower()).populate_existing().first()

    def find_by_confirmation_token(self, token_hash: str) -> Optional[User]:
        if not token_hash:
            return None
        with self._storage.reading() as session:
            return session.query(User).filter(User.email_confirmation_token == token_hash).populate_existing().first()

    def find_by_reset_token(self, token_hash: str) -> Optional[User]:
        if not token_hash:
            return None
        with self._storage.reading() as session:
            return session.query(User).filter(User.reset_password_token == token_hash).populate_existing().first()

    def insert(self, user: User) -> User:
        with self._storage.transaction() as session:
            session.add(user)
        return user

    def update(self, user: User) -> User:
        user.normalized_username = normalize_username(user.username)
        with self._storage.transaction() as session:
            merged = session.merge(user)
        return merged

    def increment_failed_logins(self, user_id: str) -> int:
        with self._storage.transaction() as session:
            session.query(User).filter(User.id == user_id).update(
                {User.failed_login_count: User.failed_login_count + 1},
                synchronize_session=False,
            )
            count = session.query(User.failed_login_count).filter(User.id == user_id).scalar()
        return int(count or 0)

    def migrate(self) -> None:
        self._storage.reload()


class SQLRefreshTokenStore:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def create(self, record: RefreshToken) -> None:
        with self._storage.transaction() as session:
            session.add(record)

    def get(self, token: str) -> Optional[RefreshToken]:
        if not token:
            return None
        with self._storage.reading() as session:
            # populate_existing: always read the committed row, not a stale identity-map copy
            return (
                session.query(RefreshToken)
                .filter(RefreshToken.token == token)
                .populate_existing()
                .first()
            )

    def delete(self, token: str) -> bool:
        with self._storage.transaction() as session:
            removed = session.query(RefreshToken).filter(RefreshToken.token == token).delete(
                synchronize_session=False
            )
        return removed > 0

    def delete_all_for_user(self, user_id: str) -> int:
        with self._storage.transaction() as session:
            return session.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete(
                synchronize_session=False
            )

    def rotate(self, old_token: str, new_record: RefreshToken, tombstone: Optional[Tombstone] = None) -> bool:
        with self._storage.transaction() as session:
            live = session.query(RefreshToken).filter(
                RefreshToken.token == old_token,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.compromised.is_(False),
            )
            if tombstone is None:
                retired = live.delete(synchronize_session=False)
            else:
                retired = live.update(
                    {
                        RefreshToken.revoked_at: tombstone.revoked_at,
                        RefreshToken.replaced_by_hash: tombstone.replaced_by_hash,
                    },
                    synchronize_session=False,
                )
            if retired != 1:
                # somebody else rotated it first; leave nothing behind
                session.rollback()
                return False
            session.add(new_record)
        return True

    def compromise_session(self, session_id: str, now: datetime) -> int:
        with self._storage.transaction() as session:
            session.query(RefreshToken).filter(
                RefreshToken.session_id == session_id, RefreshToken.revoked_at.is_(None)
            ).update({RefreshToken.revoked_at: now}, synchronize_session=False)
            return session.query(RefreshToken).filter(RefreshToken.session_id == session_id).update(
                {RefreshToken.compromised: True}, synchronize_session=False
            )

    def purge_expired(self, now: datetime) -> int:
        with self._storage.transaction() as session:
            return session.query(RefreshToken).filter(RefreshToken.expires_at <= now).delete(
                synchronize_session=False
            )

    def migrate(self) -> None:
        self._storage.reload()
