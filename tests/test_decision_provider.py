"""
Tests for the decision providers.
"""

import queue
import threading

import pytest

from conftest import DEMO_NAME
from omas_vendor.core.console_input import LineReader
from omas_vendor.models.fulfillment import Fulfillment
from omas_vendor.services.decision_provider import (
    ConsoleDecisionProvider,
    Decision,
    FixedDecisionProvider,
    parse_choice,
)


@pytest.mark.parametrize("answer,expected", [
    ("a\n", Decision.ACCEPT),
    ("A", Decision.ACCEPT),
    ("  accept\n", Decision.ACCEPT),
    ("d\n", Decision.DECLINE),
    ("x", Decision.DECLINE),
    ("\n", Decision.DECLINE),
    ("", Decision.DECLINE),
    (None, Decision.DECLINE),
])
def test_parse_choice(answer, expected):
    assert parse_choice(answer) == expected


class TestConsoleDecisionProvider:
    @pytest.mark.asyncio
    async def test_prompt_and_accept(self):
        written = []
        provider = ConsoleDecisionProvider(timeout_s=1, read_line=lambda: "a\n", write=written.append)

        decision = await provider.decide(Fulfillment(name=DEMO_NAME, state="RECEIVED"))

        assert decision == Decision.ACCEPT
        prompt = "".join(written)
        assert f"Do you want to accept the order {DEMO_NAME}?" in prompt
        assert "Enter your choice [D]: " in prompt

    @pytest.mark.asyncio
    async def test_other_answer_declines(self):
        provider = ConsoleDecisionProvider(timeout_s=1, read_line=lambda: "x\n", write=lambda s: None)

        assert await provider.decide(Fulfillment(name=DEMO_NAME)) == Decision.DECLINE

    @pytest.mark.asyncio
    async def test_no_answer_declines(self):
        unblock = threading.Event()

        def never_answers():
            unblock.wait(2)
            return "a\n"

        provider = ConsoleDecisionProvider(timeout_s=0.05, read_line=never_answers, write=lambda s: None)
        try:
            assert await provider.decide(Fulfillment(name=DEMO_NAME)) == Decision.DECLINE
        finally:
            unblock.set()


class TestFixedDecisionProvider:
    @pytest.mark.asyncio
    async def test_always_same_answer(self):
        provider = FixedDecisionProvider(Decision.ACCEPT)

        assert await provider.decide(Fulfillment(name=DEMO_NAME)) == Decision.ACCEPT
        assert await provider.decide(Fulfillment(name=DEMO_NAME + "2")) == Decision.ACCEPT


class TestLateAnswers:
    @pytest.mark.asyncio
    async def test_answer_after_timeout_goes_to_next_prompt(self):
        lines = queue.Queue()
        provider = ConsoleDecisionProvider(timeout_s=0.2, read_line=lines.get, write=lambda s: None)
        try:
            assert await provider.decide(Fulfillment(name=DEMO_NAME)) == Decision.DECLINE

            lines.put("a\n")
            assert await provider.decide(Fulfillment(name=DEMO_NAME + "2")) == Decision.ACCEPT
        finally:
            lines.put("")

    @pytest.mark.asyncio
    async def test_one_read_in_flight(self):
        lines = queue.Queue()
        reads = []

        def read_line():
            reads.append(True)
            return lines.get()

        reader = LineReader(read_line)
        try:
            for _ in range(3):
                with pytest.raises(TimeoutError):
                    await reader.readline(timeout=0.05)
            assert len(reads) == 1

            lines.put("d\n")
            assert await reader.readline(timeout=1) == "d\n"
        finally:
            lines.put("")

    @pytest.mark.asyncio
    async def test_read_failure_propagates_once(self):
        calls = []

        def read_line():
            calls.append(True)
            if len(calls) == 1:
                raise OSError("stdin closed")
            return "a\n"

        reader = LineReader(read_line)

        with pytest.raises(OSError):
            await reader.readline(timeout=1)
        assert await reader.readline(timeout=1) == "a\n"
