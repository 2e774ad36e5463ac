"""
Token Refresher — refresh_token grant.
======================================

One round trip: exchange the offline token for a fresh access token.
The server may rotate the offline token; a response without refresh_token
keeps the previous one.

Failure classes:
  - 400/401 OAuth error (invalid_grant, ...) → REFRESH_REJECTED
    (offline token revoked/expired; device flow must run again)
  - no response, 5xx, unreadable body        → TRANSPORT_ERROR
    (caller may retry; never retried here)
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from omas_vendor.config import settings
from omas_vendor.core.errors import AuthError, AuthErrorKind
from omas_vendor.models.credentials import TokenGrant
from omas_vendor.services.oauth_http import describe_error, post_form

logger = logging.getLogger(__name__)


class TokenRefresher:
    def __init__(
        self,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token_url = token_url or settings.auth_token_url
        self._client_id = client_id or settings.auth_client_id
        self._timeout = timeout or settings.http_timeout_s
        self._transport = transport

    async def refresh(self, offline_credential: str) -> TokenGrant:
        logger.info("Refreshing access token")
        status_code, data = await post_form(
            self._token_url,
            {
                "grant_type": "refresh_token",
                "refresh_token": offline_credential,
                "client_id": self._client_id,
            },
            timeout=self._timeout,
            transport=self._transport,
        )

        if status_code == 200 and data and data.get("access_token"):
            grant = TokenGrant.from_token_response(data)
            if grant.offline_credential is None:
                grant = TokenGrant(access=grant.access, offline_credential=offline_credential)
            return grant

        detail = describe_error(status_code, data)
        if 400 <= status_code < 500 and data and data.get("error"):
            logger.warning("Offline token rejected: %s", detail)
            raise AuthError(AuthErrorKind.REFRESH_REJECTED, detail=detail)

        logger.warning("Token refresh failed (retryable): %s", detail)
        raise AuthError(AuthErrorKind.TRANSPORT_ERROR, detail=detail)
