"""
Operator input without blocking the event loop.

LineReader runs the blocking read (sys.stdin.readline by default) in a
daemon thread, one read at a time. A read that outlives its timeout stays
pending and answers the next readline() call, so a line typed after a
prompt expired is never lost to an orphaned thread. Daemon threads do not
hold up interpreter exit while the terminal is idle.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class LineReader:
    def __init__(self, read_line: Optional[Callable[[], str]] = None):
        self._read_line = read_line or (lambda: sys.stdin.readline())
        self._pending: Optional[asyncio.Future] = None

    async def readline(self, timeout: float) -> str:
        """Next line of input ("" at EOF).

        Raises TimeoutError when nothing arrives within timeout; the read
        itself keeps going and is picked up by the next call.
        """
        loop = asyncio.get_running_loop()
        if self._pending is None or self._pending.get_loop() is not loop:
            self._pending = self._start_read(loop)
        pending = self._pending
        try:
            return await asyncio.wait_for(asyncio.shield(pending), timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"no input within {timeout}s") from None
        finally:
            if pending.done():
                self._pending = None

    def _start_read(self, loop: asyncio.AbstractEventLoop) -> asyncio.Future:
        future = loop.create_future()
        threading.Thread(
            target=self._read_into, args=(loop, future), name="console-input", daemon=True,
        ).start()
        return future

    def _read_into(self, loop: asyncio.AbstractEventLoop, future: asyncio.Future) -> None:
        try:
            line = self._read_line()
        except Exception as e:
            self._post(loop, future, None, e)
            return
        self._post(loop, future, line, None)

    @staticmethod
    def _post(loop, future, line, error) -> None:
        def _resolve():
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(line)

        try:
            loop.call_soon_threadsafe(_resolve)
        except RuntimeError:
            # loop already closed (shutdown while waiting for input)
            logger.debug("Discarding console input read after loop shutdown")
