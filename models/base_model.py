#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins.

- UUID primary key (String(36)) with defaults
- created_at timestamp, filled on construction so in-memory adapters see it too
- UTCDateTime column type: always hands back timezone-aware UTC datetimes,
  including on SQLite which drops tzinfo on the way in
- to_dict() that formats timestamps and removes SA internals

Notes:
- Models are plain mapped classes; they are persisted by whichever store
  adapter the app was wired with (models/db_storage.py or models/memory_storage.py),
  so there is no save()/delete() on the instance.
"""

from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

TIME_FMT = "%Y-%m-%dT%H:%M:%S.%f"

# Declarative base for all models
Base = declarative_base()


def _uuid_str() -> str:
    """Return a canonical UUIDv4 string (36 chars, with hyphens)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime that stores UTC and always loads timezone-aware values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        value = as_utc(value)
        if value is not None and dialect.name == "sqlite":
            # SQLite keeps the text form only; store naive UTC
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        return as_utc(value)


class BaseModel:
    """
    Base mixin for entity models.

    - id, created_at
    - __defaults__: per-model python-side defaults applied in __init__, so
      objects that never touch a Session (in-memory adapters, tests) are complete
    - to_dict() with __class__ and timestamp formatting
    """

    __defaults__: dict = {}

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
        for key, default in self.__defaults__.items():
            if key not in kwargs:
                setattr(self, key, default() if callable(default) else default)
        # Ensure an id exists if user passed none
        if getattr(self, "id", None) is None:
            self.id = _uuid_str()
        if getattr(self, "created_at", None) is None:
            self.created_at = utcnow()

    def copy(self):
        """Detached copy of the column values (lists and dicts shallow-copied)."""
        values = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (list, dict)):
                value = value.copy()
            values[column.name] = value
        return self.__class__(**values)

    def __str__(self) -> str:
        """Human-friendly representation including id."""
        return f"[{self.__class__.__name__}] ({self.id})"

    def to_dict(self) -> dict:
        """
        Return a dictionary of fields suitable for API responses:
        - Adds __class__
        - Formats datetime values to TIME_FMT
        - Removes SQLAlchemy internal state and secrets (anything ending in _hash or _token)
        """
        d = {}
        for k, v in self.__dict__.items():
            if k == "_sa_instance_state" or k.endswith("_hash") or k.endswith("_token"):
                continue
            d[k] = v.strftime(TIME_FMT) if isinstance(v, datetime) else v
        d["__class__"] = self.__class__.__name__
        return d
