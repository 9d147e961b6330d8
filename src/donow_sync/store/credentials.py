# src/donow_sync/store/credentials.py

from __future__ import annotations

import logging

from .kv_store import AUTH_TOKEN_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class CredentialStore:
    """Persisted bearer token, kept next to the local data."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def get_token(self) -> str | None:
        token = self._kv.get(AUTH_TOKEN_KEY)
        if not isinstance(token, str) or not token.strip():
            return None
        return token.strip()

    def set_token(self, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise ValueError("token is required")
        self._kv.set(AUTH_TOKEN_KEY, token)
        logger.info("Auth token stored")

    def clear_token(self) -> None:
        self._kv.delete(AUTH_TOKEN_KEY)
        logger.info("Auth token cleared")
