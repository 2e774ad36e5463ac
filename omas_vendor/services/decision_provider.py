"""
Decision providers — accept or decline a received order.

ConsoleDecisionProvider asks the operator on the terminal and declines on
anything but "a"/"A", including no answer within the timeout. A line typed
after a prompt expired answers the next prompt.
FixedDecisionProvider answers the same every time (unattended runs, tests).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from enum import Enum
from typing import Callable, Optional, Protocol

from omas_vendor.config import settings
from omas_vendor.core.console_input import LineReader
from omas_vendor.models.fulfillment import Fulfillment

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class DecisionProvider(Protocol):
    async def decide(self, fulfillment: Fulfillment) -> Decision: ...


class FixedDecisionProvider:
    def __init__(self, decision: Decision):
        self._decision = decision

    async def decide(self, fulfillment: Fulfillment) -> Decision:
        return self._decision


def parse_choice(answer: Optional[str]) -> Decision:
    """First character "a"/"A" accepts; everything else declines."""
    if answer and answer.strip()[:1] in ("a", "A"):
        return Decision.ACCEPT
    return Decision.DECLINE


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class ConsoleDecisionProvider:
    def __init__(
        self,
        timeout_s: Optional[float] = None,
        read_line: Optional[Callable[[], str]] = None,
        write: Optional[Callable[[str], object]] = None,
    ):
        self._timeout_s = timeout_s if timeout_s is not None else settings.decision_timeout_s
        self._reader = LineReader(read_line)
        self._write = write or _write_stdout
        # one prompt on the terminal at a time
        self._lock = asyncio.Lock()

    async def decide(self, fulfillment: Fulfillment) -> Decision:
        async with self._lock:
            self._write(
                f"Do you want to accept the order {fulfillment.name}?\n"
                "A: accept or D: decline\n"
                "Enter your choice [D]: "
            )
            try:
                answer = await self._reader.readline(self._timeout_s)
            except TimeoutError:
                self._write("\n")
                logger.warning(
                    "No answer for %s within %.0fs — declining", fulfillment.name, self._timeout_s,
                )
                return Decision.DECLINE
            return parse_choice(answer)
