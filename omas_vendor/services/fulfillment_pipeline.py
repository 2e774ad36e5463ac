"""
Fulfillment Pipeline — simulated processing, delivery and completion.
=====================================================================

Runs once per accepted order, detached from the poll loop:

  1. wait → process(completed=false) → wait → process(completed=true)
  2. wait → deliver(new estimate)     → wait → deliver(actual time, completed=true)
  3. complete(optional settlement)

Steps run strictly in this order. The first failing transition raises
OrderTransitionError and the rest of the pipeline is abandoned; the vendor
keeps whatever state the last successful call produced. Cancellation
(shutdown) interrupts any wait or call the same way, without rollback.

PipelineTasks tracks the running pipelines: at most one per fulfillment
name, awaited (with a timeout) at shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import httpx
import structlog

from omas_vendor.config import settings
from omas_vendor.core.errors import OmasError, OrderTransitionError
from omas_vendor.models.fulfillment import (
    CompleteOrderRequest,
    Delivery,
    DeliverOrderRequest,
    Fulfillment,
    ProcessOrderRequest,
    Settlement,
)
from omas_vendor.services.vendor_client import VendorApiClient

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class PipelineStep(str, Enum):
    PROCESSING_STARTED = "processing_started"
    PROCESSING_FINISHED = "processing_finished"
    DELIVERY_STARTED = "delivery_started"
    DELIVERY_FINISHED = "delivery_finished"
    COMPLETION = "completion"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FulfillmentPipeline:
    def __init__(
        self,
        client: VendorApiClient,
        *,
        delay_min_s: Optional[float] = None,
        delay_max_s: Optional[float] = None,
        delivery_update_estimate_s: Optional[int] = None,
        settlement: Optional[Settlement] = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._client = client
        self._delay_min_s = delay_min_s if delay_min_s is not None else settings.simulated_delay_min_s
        self._delay_max_s = delay_max_s if delay_max_s is not None else settings.simulated_delay_max_s
        self._delivery_update_estimate_s = (
            delivery_update_estimate_s if delivery_update_estimate_s is not None
            else settings.delivery_update_estimate_s
        )
        self._settlement = settlement
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock

    async def run(self, fulfillment: Fulfillment) -> Fulfillment:
        """Drive an accepted order to completion. Raises OrderTransitionError."""
        with structlog.contextvars.bound_contextvars(fulfillment=fulfillment.name):
            fulfillment = await self._process(fulfillment)
            fulfillment = await self._deliver(fulfillment)
            fulfillment = await self._complete(fulfillment)
        return fulfillment

    async def _simulate_delay(self) -> None:
        await self._sleep(self._rng.uniform(self._delay_min_s, self._delay_max_s))

    async def _transition(self, name: str, step: PipelineStep, call: Awaitable[Fulfillment]) -> Fulfillment:
        try:
            return await call
        except (OmasError, httpx.HTTPError) as e:
            raise OrderTransitionError(name, step.value, e) from e

    async def _process(self, fulfillment: Fulfillment) -> Fulfillment:
        name = fulfillment.name
        logger.info("order idle simulation")
        await self._simulate_delay()

        fulfillment = await self._transition(
            name, PipelineStep.PROCESSING_STARTED,
            self._client.process_order(name, ProcessOrderRequest(completed=False)),
        )
        logger.info("order processing")
        await self._simulate_delay()

        fulfillment = await self._transition(
            name, PipelineStep.PROCESSING_FINISHED,
            self._client.process_order(name, ProcessOrderRequest(completed=True)),
        )
        logger.info("order processed")
        return fulfillment

    async def _deliver(self, fulfillment: Fulfillment) -> Fulfillment:
        name = fulfillment.name
        logger.info("order pickup simulation")
        await self._simulate_delay()

        estimate = self._clock() + timedelta(seconds=self._delivery_update_estimate_s)
        fulfillment = await self._transition(
            name, PipelineStep.DELIVERY_STARTED,
            self._client.deliver_order(
                name, DeliverOrderRequest(delivery=Delivery(time=estimate), completed=False),
            ),
        )
        logger.info("order delivering")
        await self._simulate_delay()

        fulfillment = await self._transition(
            name, PipelineStep.DELIVERY_FINISHED,
            self._client.deliver_order(
                name, DeliverOrderRequest(delivery=Delivery(time=self._clock()), completed=True),
            ),
        )
        logger.info("order delivered")
        return fulfillment

    async def _complete(self, fulfillment: Fulfillment) -> Fulfillment:
        name = fulfillment.name
        fulfillment = await self._transition(
            name, PipelineStep.COMPLETION,
            self._client.complete_order(name, CompleteOrderRequest(settlement=self._settlement)),
        )
        # finalized server-side as COMPLETED or SETTLED
        logger.info("order completing (state=%s)", fulfillment.state.value)
        return fulfillment


class PipelineTasks:
    """Running pipelines keyed by fulfillment name."""

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def is_running(self, name: str) -> bool:
        return name in self._tasks

    def spawn(self, name: str, coro: Awaitable[Fulfillment]) -> Optional[asyncio.Task]:
        """Start a pipeline task unless one is already running for name."""
        if name in self._tasks:
            logger.warning("Pipeline for %s already running — not starting another", name)
            close = getattr(coro, "close", None)
            if close is not None:
                close()
            return None
        task = asyncio.create_task(coro, name=f"fulfill:{name}")
        self._tasks[name] = task
        task.add_done_callback(lambda t: self._on_done(name, t))
        return task

    def _on_done(self, name: str, task: asyncio.Task) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if task.cancelled():
            logger.warning("Pipeline for %s cancelled", name)
            return
        exc = task.exception()
        if isinstance(exc, OrderTransitionError):
            logger.error(
                "Pipeline aborted (%s): fulfillment=%s step=%s cause=%r",
                exc.code, exc.name, exc.step, exc.cause,
            )
        elif exc is not None:
            logger.error("Pipeline for %s crashed", name, exc_info=exc)
        else:
            logger.info("Pipeline for %s finished", name)

    async def drain(self, timeout_s: Optional[float] = None) -> None:
        """Wait for running pipelines, cancel whatever is left after timeout_s."""
        timeout_s = timeout_s if timeout_s is not None else settings.shutdown_timeout_s
        pending = list(self._tasks.values())
        if not pending:
            return
        logger.info("Waiting up to %.0fs for %d running pipeline(s)", timeout_s, len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout_s)
        if still_running:
            logger.warning("Cancelling %d pipeline(s) still running at shutdown", len(still_running))
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
