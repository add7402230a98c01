from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol, Set

from utils.logger import get_logger
from utils.pure import utc_now_iso

_logger = get_logger(__name__)


class EventSink(Protocol):
    async def emit(self, name: str, data: Dict[str, Any]) -> None: ...


class LoggingEventSink:
    """Default sink: analytics events only go to the log."""

    async def emit(self, name: str, data: Dict[str, Any]) -> None:
        _logger.info(f"event {name}: {data}")


class EventShipper:
    """Fire-and-forget delivery to an EventSink; failures are logged, never raised."""

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink or LoggingEventSink()
        self._tasks: Set[asyncio.Task] = set()

    def ship(self, name: str, data: Optional[Dict[str, Any]] = None) -> None:
        payload = {**(data or {}), "timestamp": utc_now_iso()}
        task = asyncio.get_running_loop().create_task(self._deliver(name, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, name: str, payload: Dict[str, Any]) -> None:
        try:
            await self.sink.emit(name, payload)
        except Exception as exc:
            _logger.warning(f"Dropped analytics event {name}: {exc}")

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
