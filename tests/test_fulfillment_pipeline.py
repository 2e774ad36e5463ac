"""
Tests for FulfillmentPipeline and PipelineTasks.

Covers strict step ordering, abort on the first failing transition, and
the drain/cancel behaviour used at shutdown.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import DEMO_NAME
from omas_vendor.core.errors import OrderTransitionError, VendorApiError
from omas_vendor.models.fulfillment import Fulfillment, FulfillmentState, Settlement
from omas_vendor.services.fulfillment_pipeline import FulfillmentPipeline, PipelineStep, PipelineTasks

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def recording_client():
    """Client mock whose calls land in a single ordered list."""
    calls = []
    client = MagicMock()

    async def process(name, body):
        calls.append(("process", body.completed))
        return Fulfillment(name=name, state="PROCESSING")

    async def deliver(name, body):
        calls.append(("deliver", body.completed, body.delivery.time))
        return Fulfillment(name=name, state="DELIVERING")

    async def complete(name, body=None):
        calls.append(("complete", body))
        return Fulfillment(name=name, state="COMPLETED")

    client.process_order = AsyncMock(side_effect=process)
    client.deliver_order = AsyncMock(side_effect=deliver)
    client.complete_order = AsyncMock(side_effect=complete)
    client.calls = calls
    return client


def make_pipeline(client, no_sleep, **kwargs):
    kwargs.setdefault("delay_min_s", 5)
    kwargs.setdefault("delay_max_s", 30)
    return FulfillmentPipeline(
        client,
        delivery_update_estimate_s=300,
        sleep=no_sleep,
        rng=random.Random(42),
        clock=lambda: NOW,
        **kwargs,
    )


class TestFulfillmentPipeline:
    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, no_sleep):
        client = recording_client()

        result = await make_pipeline(client, no_sleep).run(Fulfillment(name=DEMO_NAME, state="ACCEPTED"))

        assert [c[0] for c in client.calls] == ["process", "process", "deliver", "deliver", "complete"]
        assert [c[1] for c in client.calls[:4]] == [False, True, False, True]
        assert result.state == FulfillmentState.COMPLETED

    @pytest.mark.asyncio
    async def test_delivery_times(self, no_sleep):
        client = recording_client()

        await make_pipeline(client, no_sleep).run(Fulfillment(name=DEMO_NAME))

        deliveries = [c for c in client.calls if c[0] == "deliver"]
        assert deliveries[0][2] == NOW + timedelta(seconds=300)
        assert deliveries[1][2] == NOW

    @pytest.mark.asyncio
    async def test_simulated_delays_within_bounds(self, no_sleep):
        await make_pipeline(recording_client(), no_sleep).run(Fulfillment(name=DEMO_NAME))

        # one wait before each process/deliver call, none before completion
        assert len(no_sleep.calls) == 4
        assert all(5 <= d <= 30 for d in no_sleep.calls)

    @pytest.mark.asyncio
    async def test_settlement_forwarded(self, no_sleep):
        client = recording_client()
        settlement = Settlement(payment={"method": "cash"})

        await make_pipeline(client, no_sleep, settlement=settlement).run(Fulfillment(name=DEMO_NAME))

        body = client.calls[-1][1]
        assert body.settlement == settlement

    @pytest.mark.asyncio
    async def test_failure_aborts_remaining_steps(self, no_sleep):
        client = recording_client()
        client.deliver_order = AsyncMock(side_effect=VendorApiError(409, detail="wrong state"))

        with pytest.raises(OrderTransitionError) as exc_info:
            await make_pipeline(client, no_sleep).run(Fulfillment(name=DEMO_NAME))

        assert exc_info.value.name == DEMO_NAME
        assert exc_info.value.step == PipelineStep.DELIVERY_STARTED.value
        assert isinstance(exc_info.value.cause, VendorApiError)
        client.complete_order.assert_not_awaited()
        assert client.deliver_order.await_count == 1

    @pytest.mark.asyncio
    async def test_processing_finished_failure_step(self, no_sleep):
        client = recording_client()
        client.process_order = AsyncMock(side_effect=[
            Fulfillment(name=DEMO_NAME, state="PROCESSING"),
            VendorApiError(0, detail="ConnectError"),
        ])

        with pytest.raises(OrderTransitionError) as exc_info:
            await make_pipeline(client, no_sleep).run(Fulfillment(name=DEMO_NAME))

        assert exc_info.value.step == "processing_finished"
        client.deliver_order.assert_not_awaited()


class TestPipelineTasks:
    @pytest.mark.asyncio
    async def test_one_task_per_name(self):
        tasks = PipelineTasks()
        release = asyncio.Event()

        async def job():
            await release.wait()

        first = tasks.spawn(DEMO_NAME, job())
        second_coro = job()
        second = tasks.spawn(DEMO_NAME, second_coro)

        assert first is not None
        assert second is None
        assert tasks.is_running(DEMO_NAME)
        assert len(tasks) == 1

        release.set()
        await first
        await asyncio.sleep(0)
        assert not tasks.is_running(DEMO_NAME)

    @pytest.mark.asyncio
    async def test_failed_task_is_forgotten(self):
        tasks = PipelineTasks()

        async def failing():
            raise OrderTransitionError(DEMO_NAME, "completion", VendorApiError(500))

        task = tasks.spawn(DEMO_NAME, failing())
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert len(tasks) == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_finishing_tasks(self):
        tasks = PipelineTasks()
        finished = []

        async def job():
            await asyncio.sleep(0.01)
            finished.append(True)

        tasks.spawn(DEMO_NAME, job())
        await tasks.drain(timeout_s=5)

        assert finished == [True]

    @pytest.mark.asyncio
    async def test_drain_cancels_after_timeout(self):
        tasks = PipelineTasks()
        cancelled = []

        async def stuck():
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = tasks.spawn(DEMO_NAME, stuck())
        await tasks.drain(timeout_s=0.01)

        assert cancelled == [True]
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_drain_with_nothing_running(self):
        await PipelineTasks().drain(timeout_s=0)
