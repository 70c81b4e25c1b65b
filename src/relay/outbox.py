"""Ordered delivery of session updates produced by synchronous event handlers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class UpdateQueue:
    """FIFO queue drained by a single background task.

    Event handlers call ``put`` synchronously; the worker awaits ``send`` for
    each update in order, so updates reach the connection in the order they
    were produced.
    """

    def __init__(self, send: Callable[[Any], Awaitable[bool]]) -> None:
        """Initialize the queue.

        Args:
            send: Coroutine that delivers one update and reports success. It
                is expected to handle its own errors.
        """
        self._send = send
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def put(self, update: Any) -> None:
        """Queue an update. Must be called from the event loop thread."""
        if self._closed:
            logger.debug("Dropping update queued after close")
            return

        self._queue.put_nowait(update)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def drain(self) -> None:
        """Wait until every queued update has been handed to ``send``."""
        if self._closed:
            return
        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker and discard undelivered updates.

        Discarded updates are marked done so a pending ``drain`` returns.
        """
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.debug(f"Discarded {dropped} undelivered updates on close")

    async def _run(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                await self._send(update)
            finally:
                self._queue.task_done()
