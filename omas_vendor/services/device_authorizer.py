"""
Device Authorizer — OAuth 2.0 Device Authorization Grant (RFC 8628).
=====================================================================

Registers this vendor agent once to obtain an offline (refresh) token:

1. POST the device authorization endpoint → device_code, user_code,
   verification_uri, interval, expires_in
2. Show the user code + URI to the operator
3. Poll the token endpoint every `interval` seconds (+ jitter):
   - authorization_pending → keep polling
   - slow_down             → interval += 5s, keep polling
   - access_denied         → DEVICE_FLOW_DENIED
   - expired_token / deadline reached → DEVICE_FLOW_EXPIRED
   - anything else         → terminal
4. Return the token grant (access token + offline token)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional

import httpx

from omas_vendor.config import settings
from omas_vendor.core.errors import AuthError, AuthErrorKind
from omas_vendor.models.credentials import DeviceAuthorization, TokenGrant
from omas_vendor.services.oauth_http import describe_error, post_form

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
SLOW_DOWN_INCREMENT_S = 5.0

PromptCallback = Callable[[DeviceAuthorization], None]
SleepFn = Callable[[float], Awaitable[None]]


def log_device_prompt(auth: DeviceAuthorization) -> None:
    """Default presentation: tell the operator where to sign in."""
    logger.info("Go to: %s", auth.verification_uri)
    logger.info("Enter the code: %s", auth.user_code)
    if auth.verification_uri_complete:
        logger.info("Or open: %s", auth.verification_uri_complete)


class DeviceAuthorizer:
    """Mints an initial offline token through the device flow."""

    def __init__(
        self,
        device_url: Optional[str] = None,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        scope: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        default_interval_s: Optional[float] = None,
        jitter_s: Optional[float] = None,
        on_prompt: Optional[PromptCallback] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._device_url = device_url or settings.auth_device_url
        self._token_url = token_url or settings.auth_token_url
        self._client_id = client_id or settings.auth_client_id
        self._scope = scope if scope is not None else settings.auth_scope
        self._timeout = timeout or settings.http_timeout_s
        self._transport = transport
        self._default_interval_s = (
            default_interval_s if default_interval_s is not None
            else settings.device_poll_default_interval_s
        )
        self._jitter_s = jitter_s if jitter_s is not None else settings.device_poll_jitter_s
        self._on_prompt = on_prompt or log_device_prompt
        self._sleep = sleep
        self._clock = clock

    async def authorize(self) -> TokenGrant:
        logger.info("Device registration started (client_id=%s)", self._client_id)
        auth = await self._request_device_code()
        self._on_prompt(auth)

        deadline = self._clock() + auth.expires_in_s if auth.expires_in_s else None
        interval = auth.interval_s
        attempts = 0

        while True:
            await self._sleep(interval + random.uniform(0, self._jitter_s))
            if deadline is not None and self._clock() >= deadline:
                raise AuthError(
                    AuthErrorKind.DEVICE_FLOW_EXPIRED,
                    detail=f"device code expired after {attempts} polls",
                )

            attempts += 1
            status_code, data = await post_form(
                self._token_url,
                {
                    "grant_type": DEVICE_CODE_GRANT,
                    "device_code": auth.device_code,
                    "client_id": self._client_id,
                },
                timeout=self._timeout,
                transport=self._transport,
            )

            if status_code == 200 and data and data.get("access_token"):
                return self._grant_from(data, attempts)

            error = (data or {}).get("error")
            if error == "authorization_pending":
                logger.debug("Device authorization pending (attempt %d)", attempts)
                continue
            if error == "slow_down":
                interval += SLOW_DOWN_INCREMENT_S
                logger.info("Token endpoint asked to slow down — polling every %.0fs", interval)
                continue
            if error == "access_denied":
                raise AuthError(AuthErrorKind.DEVICE_FLOW_DENIED, detail=describe_error(status_code, data))
            if error == "expired_token":
                raise AuthError(AuthErrorKind.DEVICE_FLOW_EXPIRED, detail=describe_error(status_code, data))

            logger.error("Device token request failed: %s", describe_error(status_code, data))
            kind = AuthErrorKind.TRANSPORT_ERROR if status_code >= 500 else AuthErrorKind.DEVICE_FLOW_DENIED
            raise AuthError(kind, detail=describe_error(status_code, data))

    async def _request_device_code(self) -> DeviceAuthorization:
        form = {"client_id": self._client_id}
        if self._scope:
            form["scope"] = self._scope
        status_code, data = await post_form(
            self._device_url, form, timeout=self._timeout, transport=self._transport,
        )
        if status_code != 200 or not data or "device_code" not in data:
            kind = AuthErrorKind.TRANSPORT_ERROR if status_code >= 500 else AuthErrorKind.DEVICE_FLOW_DENIED
            raise AuthError(kind, detail=f"device authorization failed: {describe_error(status_code, data)}")
        return DeviceAuthorization.from_response(data, default_interval_s=self._default_interval_s)

    def _grant_from(self, data: dict, attempts: int) -> TokenGrant:
        grant = TokenGrant.from_token_response(data)
        if not grant.offline_credential:
            raise AuthError(
                AuthErrorKind.DEVICE_FLOW_DENIED,
                detail=f"no refresh_token issued — is offline_access in scope {self._scope!r}?",
            )
        logger.info("Device registered after %d token polls", attempts)
        return grant
