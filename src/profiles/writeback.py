"""
Trailing-edge debounce for remote profile writes.

One task at a time: the first mutation opens a window, later mutations inside
the window are absorbed, and when the window closes the write callback
serialises whatever the profile looks like at that moment. A mutation that
arrives while that write is already running marks the writer dirty, and a new
window opens as soon as the running write returns.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from utils.logger import get_logger

_logger = get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0


class DebouncedWriter:
    def __init__(
        self,
        write: Callable[[], Awaitable[None]],
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        name: str = "profile",
    ):
        self._write = write
        self.delay = delay
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()
        self._writing = False
        self._dirty = False
        self._closed = False
        self.writes = 0
        self.failures = 0

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> bool:
        """
        Open a debounce window unless one is already pending; True if a new
        window was opened.

        While a write is running the call only marks the writer dirty.
        """
        if self._closed:
            return False
        if self.pending:
            if self._writing:
                self._dirty = True
            return False
        self._open_window()
        return True

    def _open_window(self) -> None:
        self._wake = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.delay)
        except asyncio.TimeoutError:
            pass
        self._writing = True
        try:
            await self._write()
            self.writes += 1
        except Exception as exc:
            # memory stays authoritative; the next mutation opens a new window
            self.failures += 1
            _logger.warning(f"Batched {self.name} write failed: {exc}")
        finally:
            self._writing = False
        if self._dirty:
            self._dirty = False
            self._open_window()

    async def flush(self) -> None:
        """Close pending windows now and wait until every queued write has finished."""
        while self.pending:
            task = self._task
            self._wake.set()
            await task

    async def close(self) -> None:
        await self.flush()
        self._closed = True
