"""
Models and store adapters.

build_stores() is called once by create_app(); nothing here keeps a module-level store.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

from services.errors import ConfigurationError


def build_stores(config: Mapping[str, Any]) -> Tuple[Any, Any, Optional[Any]]:
    """Return (credential_store, refresh_token_store, db_storage_or_None) for STORAGE_BACKEND."""
    backend = (config.get("STORAGE_BACKEND") or "memory").lower()

    if backend == "memory":
        from models.memory_storage import InMemoryCredentialStore, InMemoryRefreshTokenStore

        return InMemoryCredentialStore(), InMemoryRefreshTokenStore(), None

    if backend == "sql":
        from models.db_storage import DBStorage, SQLCredentialStore, SQLRefreshTokenStore

        url = config.get("DATABASE_URL")
        if not url:
            raise ConfigurationError("DATABASE_URL is required when STORAGE_BACKEND=sql")
        storage = DBStorage(url, echo=bool(config.get("SQL_ECHO", False)))
        storage.reload()
        return SQLCredentialStore(storage), SQLRefreshTokenStore(storage), storage

    raise ConfigurationError(f"Unknown STORAGE_BACKEND {backend!r}")
