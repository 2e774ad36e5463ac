"""
Credential Manager — one valid bearer token, always.
=====================================================

Owns the in-memory access token and drives the offline token lifecycle:

1. Cached access token valid (now < expiry - safety margin) → return it, no I/O
2. No offline token stored      → DeviceAuthorizer (device flow)
3. Offline token stored         → TokenRefresher
4. Persist a rotated offline token, cache the access token, return

Concurrent callers that find the cache expired share one in-flight
exchange. A rejected offline token is deleted so the *next* call runs the
device flow; the failing call itself raises instead of recursing.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from omas_vendor.config import settings
from omas_vendor.core.errors import AuthError, AuthErrorKind
from omas_vendor.models.credentials import AccessCredential, TokenGrant
from omas_vendor.services.device_authorizer import DeviceAuthorizer
from omas_vendor.services.token_refresher import TokenRefresher
from omas_vendor.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialManager:
    def __init__(
        self,
        store: TokenStore,
        authorizer: DeviceAuthorizer,
        refresher: TokenRefresher,
        *,
        safety_margin_s: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._authorizer = authorizer
        self._refresher = refresher
        self._safety_margin_s = (
            safety_margin_s if safety_margin_s is not None else settings.token_safety_margin_s
        )
        self._clock = clock
        self._access: Optional[AccessCredential] = None
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def cached(self) -> Optional[AccessCredential]:
        return self._access

    def _cached_if_valid(self) -> Optional[AccessCredential]:
        access = self._access
        if access is not None and access.is_valid(self._clock(), self._safety_margin_s):
            return access
        return None

    async def ensure_access_credential(self) -> AccessCredential:
        """Return a valid access token, acquiring one if needed.

        Raises AuthError.
        """
        access = self._cached_if_valid()
        if access is not None:
            return access

        async with self._lock:
            access = self._cached_if_valid()
            if access is not None:
                return access
            if self._inflight is None or self._inflight.done():
                self._inflight = asyncio.create_task(self._acquire(), name="credential-refresh")
                self._inflight.add_done_callback(self._clear_inflight)
            task = self._inflight

        # a cancelled caller must not cancel the exchange other callers wait on
        return await asyncio.shield(task)

    async def authorization_header(self) -> str:
        return (await self.ensure_access_credential()).authorization_header

    def invalidate(self) -> None:
        """Drop the cached access token (e.g. after the API answered 401)."""
        if self._access is not None:
            logger.info("Access token invalidated")
        self._access = None

    async def reauthorize(self) -> AccessCredential:
        """Forget every credential and run the device flow on the next use."""
        self._store.clear()
        self.invalidate()
        return await self.ensure_access_credential()

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _acquire(self) -> AccessCredential:
        offline = self._store.load()
        if offline is None:
            grant = await self._authorizer.authorize()
        else:
            try:
                grant = await self._refresher.refresh(offline)
            except AuthError as e:
                if e.kind == AuthErrorKind.REFRESH_REJECTED:
                    logger.warning("Stored offline token rejected — device registration required on next use")
                    self._store.clear()
                raise
        return self._apply(grant, previous_offline=offline)

    def _apply(self, grant: TokenGrant, previous_offline: Optional[str]) -> AccessCredential:
        if grant.offline_credential and grant.offline_credential != previous_offline:
            self._store.save(grant.offline_credential)
        self._access = grant.access
        logger.info(
            "Access token ready (expires_at=%s, scope=%s)",
            grant.access.expires_at.isoformat(), grant.access.scope,
        )
        return grant.access
