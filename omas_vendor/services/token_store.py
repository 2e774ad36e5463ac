"""
Token Store — Persistent offline (refresh) token.
==================================================

Stores exactly one offline token per OAuth client in
{data_dir}/{client_id}-token.jwt with atomic writes (tmp + fsync + rename)
and chmod 600. Optionally Fernet-encrypted at rest.

The access token is never persisted; it lives in CredentialManager's memory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from omas_vendor.config import settings
from omas_vendor.core.atomic_io import atomic_write_text, read_text_or_none
from omas_vendor.core.secret_box import InvalidToken, SecretBox

logger = logging.getLogger(__name__)


class TokenStore:
    """Single-value durable record: latest offline token wins."""

    def __init__(
        self,
        path: Optional[str] = None,
        client_id: Optional[str] = None,
        encryption_key: Optional[str] = None,
        data_dir: Optional[str] = None,
    ):
        client_id = client_id or settings.auth_client_id
        data_dir = data_dir or settings.data_dir
        self._path = Path(path or os.path.join(data_dir, f"{client_id}-token.jwt"))
        key = encryption_key if encryption_key is not None else settings.token_encryption_key
        self._box = SecretBox(key) if key else None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[str]:
        """Return the stored offline token, or None if there is no usable one."""
        try:
            raw = read_text_or_none(self._path)
        except UnicodeDecodeError:
            logger.error("Offline token file %s is not valid UTF-8 — ignoring", self._path)
            return None
        if raw is None:
            logger.info("No offline token at %s — device registration required", self._path)
            return None
        raw = raw.strip()
        if not raw:
            logger.warning("Offline token file %s is empty — ignoring", self._path)
            return None
        if self._box is None:
            return raw
        try:
            return self._box.decrypt(raw)
        except InvalidToken:
            logger.error(
                "Offline token at %s cannot be decrypted with OMAS_TOKEN_ENCRYPTION_KEY — ignoring",
                self._path,
            )
            return None

    def save(self, offline_token: str) -> None:
        """Replace the stored offline token. Whole-value, crash-atomic."""
        if not offline_token:
            raise ValueError("offline token must be non-empty")
        data = self._box.encrypt(offline_token) if self._box else offline_token
        atomic_write_text(self._path, data)
        logger.info("Offline token saved to %s", self._path)

    def clear(self) -> None:
        """Remove the stored offline token (revoked or logged out)."""
        try:
            self._path.unlink(missing_ok=True)
            logger.warning("Offline token removed from %s", self._path)
        except OSError as e:
            logger.error("Failed to remove offline token %s: %s", self._path, e)
            raise
