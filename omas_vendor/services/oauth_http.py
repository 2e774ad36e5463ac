"""
Form-encoded POSTs to the OAuth endpoints.

Shared by DeviceAuthorizer and TokenRefresher. No retries: the device flow
has its own poll loop and refresh failures are retried by the caller.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from omas_vendor.core.errors import AuthError, AuthErrorKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


async def post_form(
    url: str,
    form: dict,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[int, Optional[dict]]:
    """POST application/x-www-form-urlencoded, return (status, json-or-None).

    Raises AuthError(TRANSPORT_ERROR) when no response was received.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(url, data=form, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        logger.warning("OAuth request to %s failed: %s", url, e)
        raise AuthError(AuthErrorKind.TRANSPORT_ERROR, detail=f"{type(e).__name__}: {e}") from e

    try:
        data = resp.json()
    except ValueError:
        data = None
    if data is not None and not isinstance(data, dict):
        data = None
    return resp.status_code, data


def describe_error(status_code: int, data: Optional[dict]) -> str:
    if not data:
        return f"HTTP {status_code}"
    error = data.get("error") or f"HTTP {status_code}"
    description = data.get("error_description")
    return f"{error}: {description}" if description else error
