"""
Fulfillment Service — per-order state machine driver.
=====================================================

Handles one polled observation of a fulfillment:

  PENDING  → confirm(ack); the next state arrives through the poller
  RECEIVED → ask the DecisionProvider
               accept  → confirm(accept, packaging + delivery estimates),
                         then start the pipeline in the background
               decline → confirm(decline, reason); nothing else
  terminal → logged as final; nothing to send
  other    → ignored (in-flight, or a state added by the vendor)

The driver never loops on its own and never changes a fulfillment without
a server round trip. handle() returns once the confirm call is done; the
pipeline keeps running independently.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from omas_vendor.config import settings
from omas_vendor.core.errors import OmasError, OrderTransitionError
from omas_vendor.models.fulfillment import ConfirmOrderRequest, Fulfillment, FulfillmentState
from omas_vendor.services.decision_provider import Decision, DecisionProvider
from omas_vendor.services.fulfillment_pipeline import FulfillmentPipeline, PipelineTasks
from omas_vendor.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)

STEP_ACK = "confirm_ack"
STEP_ACCEPT = "confirm_accept"
STEP_DECLINE = "confirm_decline"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FulfillmentStateMachine:
    def __init__(
        self,
        client: VendorApiClient,
        decisions: DecisionProvider,
        pipeline: FulfillmentPipeline,
        tasks: Optional[PipelineTasks] = None,
        *,
        packaging_estimate_s: Optional[int] = None,
        delivery_estimate_s: Optional[int] = None,
        decline_reason: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._client = client
        self._decisions = decisions
        self._pipeline = pipeline
        self._tasks = tasks if tasks is not None else PipelineTasks()
        self._packaging_estimate_s = (
            packaging_estimate_s if packaging_estimate_s is not None else settings.packaging_estimate_s
        )
        self._delivery_estimate_s = (
            delivery_estimate_s if delivery_estimate_s is not None else settings.delivery_estimate_s
        )
        self._decline_reason = decline_reason or settings.decline_reason
        self._clock = clock

    @property
    def tasks(self) -> PipelineTasks:
        return self._tasks

    async def handle(self, fulfillment: Fulfillment) -> None:
        """Apply one observation. Raises OrderTransitionError if a confirm fails."""
        logger.info("%s received (state=%s)", fulfillment.name, fulfillment.state.value)

        if fulfillment.state == FulfillmentState.PENDING:
            await self._acknowledge(fulfillment)
        elif fulfillment.state == FulfillmentState.RECEIVED:
            if self._tasks.is_running(fulfillment.name):
                logger.info("%s already being fulfilled — ignoring duplicate delivery", fulfillment.name)
                return
            decision = await self._decisions.decide(fulfillment)
            if decision == Decision.ACCEPT:
                await self._accept(fulfillment)
            else:
                await self._decline(fulfillment)
        elif fulfillment.is_terminal:
            logger.info("%s is final (state=%s)", fulfillment.name, fulfillment.state.value)
        else:
            logger.debug("%s: nothing to do in state %s", fulfillment.name, fulfillment.state.value)

    async def _confirm(self, name: str, step: str, body: ConfirmOrderRequest) -> Fulfillment:
        try:
            return await self._client.confirm_order(name, body)
        except (OmasError, httpx.HTTPError) as e:
            raise OrderTransitionError(name, step, e) from e

    async def _acknowledge(self, fulfillment: Fulfillment) -> None:
        await self._confirm(fulfillment.name, STEP_ACK, ConfirmOrderRequest.acknowledge())
        logger.info("%s acknowledged", fulfillment.name)

    async def _accept(self, fulfillment: Fulfillment) -> None:
        now = self._clock()
        body = ConfirmOrderRequest.accept_with(
            packaging_time=now + timedelta(seconds=self._packaging_estimate_s),
            delivery_time=now + timedelta(seconds=self._delivery_estimate_s),
        )
        accepted = await self._confirm(fulfillment.name, STEP_ACCEPT, body)
        logger.info("%s accepted", fulfillment.name)
        self._tasks.spawn(fulfillment.name, self._pipeline.run(accepted))

    async def _decline(self, fulfillment: Fulfillment) -> None:
        await self._confirm(
            fulfillment.name, STEP_DECLINE, ConfirmOrderRequest.decline_with(self._decline_reason),
        )
        logger.info("%s declined (%s)", fulfillment.name, self._decline_reason)
