"""
Order Poller — resumable change feed of fulfillments.
=====================================================

Loop until stopped:
  1. list changed fulfillments from the persisted page token
  2. yield every fulfillment of the page, in order
  3. persist the next page token if it changed
  4. wait poll_interval_s (returns early when stopped)

A crash between 2 and 3 re-delivers at most that page, never loses one, so
consumers must tolerate duplicate deliveries. An empty next page token never
overwrites a non-empty cursor. Only one poller may run per cursor file.

Failures of a single iteration (transport, auth, API errors) are logged and
retried after the normal interval; a timed-out call is a silent no-op.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx

from omas_vendor.config import settings
from omas_vendor.core.errors import OmasError, PollError
from omas_vendor.models.fulfillment import Fulfillment, PollOrdersResponse
from omas_vendor.services.cursor_store import CursorStore
from omas_vendor.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)


class OrderPoller:
    def __init__(
        self,
        client: VendorApiClient,
        cursor_store: CursorStore,
        *,
        stop_event: Optional[asyncio.Event] = None,
        interval_s: Optional[float] = None,
    ):
        self._client = client
        self._cursor_store = cursor_store
        self._parent = cursor_store.parent
        self._stop = stop_event or asyncio.Event()
        self._interval_s = interval_s if interval_s is not None else settings.poll_interval_s
        self._page_token: Optional[str] = None

    @property
    def page_token(self) -> Optional[str]:
        return self._page_token

    def stop(self) -> None:
        self._stop.set()

    async def poll(self) -> AsyncIterator[Fulfillment]:
        """Lazy, effectively infinite sequence of changed fulfillments."""
        self._page_token = self._cursor_store.load()
        logger.info("Polling %s from %s", self._parent, "saved cursor" if self._page_token else "the beginning")

        while not self._stop.is_set():
            try:
                rsp = await self._fetch_page()
            except PollError as e:
                logger.warning("Poll iteration failed (%s): %s", e.code, e.detail)
                rsp = None

            if rsp is not None:
                for item in rsp.fulfillments:
                    yield item

                next_token = rsp.next_page_token or self._page_token
                if next_token != self._page_token:
                    self._cursor_store.save(next_token)
                    self._page_token = next_token

            await self._wait()

        logger.info("Order polling stopped")

    async def _fetch_page(self) -> Optional[PollOrdersResponse]:
        try:
            return await self._client.list_changed_fulfillments(self._parent, page_token=self._page_token)
        except httpx.TimeoutException:
            logger.debug("Poll request timed out — retrying next tick")
            return None
        except OmasError as e:
            raise PollError(detail=str(e), cause=e) from e

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._interval_s)
        except asyncio.TimeoutError:
            pass
