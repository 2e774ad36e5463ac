"""
Vendor API Client — HTTP client for the Omas vendor REST API.
=============================================================

Wraps:
  GET  /v1/info
  GET  /v1/{parent}/fulfillments:poll?pageToken=...
  POST /v1/{name}:confirm | :process | :deliver | :complete

Every request carries the bearer token from CredentialManager. A 401
invalidates the cached access token and the request is replayed once.
Resource names (AIP-122, "vendors/x/fulfillments/y") go into the path with
their slashes unescaped.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from omas_vendor.config import settings
from omas_vendor.core.errors import VendorApiError
from omas_vendor.models.fulfillment import (
    CompleteOrderRequest,
    ConfirmOrderRequest,
    DeliverOrderRequest,
    Fulfillment,
    InfoResponse,
    PollOrdersResponse,
    ProcessOrderRequest,
)
from omas_vendor.services.credential_manager import CredentialManager

logger = logging.getLogger(__name__)


def _parse(model: type[BaseModel], data: Any, path: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise VendorApiError(200, detail=f"unexpected response shape: {e.error_count()} error(s)", path=path) from e


class VendorApiClient:
    """Async HTTP client for the vendor fulfillment endpoints."""

    def __init__(
        self,
        credentials: CredentialManager,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._credentials = credentials
        self._base_url = (base_url or settings.api_url).rstrip("/")
        self._timeout = timeout or settings.http_timeout_s
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Authenticated request; returns the decoded JSON body.

        Raises VendorApiError on non-2xx or transport failure (status 0),
        AuthError when no credential can be obtained, and lets
        httpx.TimeoutException through so callers can treat it as a
        cancelled call.
        """
        url = f"{self._base_url}{path}"

        for attempt in range(2):
            access = await self._credentials.ensure_access_credential()
            headers = {"Authorization": access.authorization_header, "Accept": "application/json"}
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    resp = await client.request(method, url, json=json, params=params, headers=headers)
            except httpx.TimeoutException:
                raise
            except httpx.HTTPError as e:
                raise VendorApiError(0, detail=f"{type(e).__name__}: {e}", path=path) from e

            if resp.status_code == 401 and attempt == 0:
                logger.warning("Vendor API answered 401 for %s %s — refreshing token", method, path)
                self._credentials.invalidate()
                continue
            break

        if resp.is_success:
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as e:
                raise VendorApiError(resp.status_code, detail="invalid JSON body", path=path) from e

        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                detail = error.get("message") or str(error)
            else:
                detail = data.get("detail") or data.get("message") or str(data)
        else:
            detail = f"HTTP {resp.status_code}"
        raise VendorApiError(resp.status_code, detail=detail, path=path)

    async def get_info(self) -> InfoResponse:
        """GET /v1/info"""
        path = "/v1/info"
        return _parse(InfoResponse, await self._request("GET", path), path)

    async def list_changed_fulfillments(self, parent: str, page_token: str = "") -> PollOrdersResponse:
        """GET /v1/{parent}/fulfillments:poll"""
        params = {"pageToken": page_token} if page_token else None
        path = f"/v1/{parent}/fulfillments:poll"
        return _parse(PollOrdersResponse, await self._request("GET", path, params=params), path)

    async def confirm_order(self, name: str, body: ConfirmOrderRequest) -> Fulfillment:
        """POST /v1/{name}:confirm"""
        path = f"/v1/{name}:confirm"
        return _parse(Fulfillment, await self._request("POST", path, json=body.to_payload()), path)

    async def process_order(self, name: str, body: ProcessOrderRequest) -> Fulfillment:
        """POST /v1/{name}:process"""
        path = f"/v1/{name}:process"
        return _parse(Fulfillment, await self._request("POST", path, json=body.to_payload()), path)

    async def deliver_order(self, name: str, body: DeliverOrderRequest) -> Fulfillment:
        """POST /v1/{name}:deliver"""
        path = f"/v1/{name}:deliver"
        return _parse(Fulfillment, await self._request("POST", path, json=body.to_payload()), path)

    async def complete_order(self, name: str, body: Optional[CompleteOrderRequest] = None) -> Fulfillment:
        """POST /v1/{name}:complete"""
        body = body or CompleteOrderRequest()
        path = f"/v1/{name}:complete"
        return _parse(Fulfillment, await self._request("POST", path, json=body.to_payload()), path)
