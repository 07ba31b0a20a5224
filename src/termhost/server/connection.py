"""WebSocket transport for terminal sessions.

Each browser connection gets an outbound queue drained by one writer
task, so messages reach the browser in exactly the order they were
queued no matter which thread queued them.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Iterable

from fastapi import WebSocket, WebSocketDisconnect

from termhost.domain.models import ServerMessage

logger = logging.getLogger(__name__)

_CLOSE = object()


class WebSocketConnection:
    """A browser terminal attached to one session.

    Live messages sent before :meth:`start` are held back; ``start``
    queues the replay preamble (session info and backlog) ahead of them.
    Combined with the registry attaching and snapshotting atomically,
    a late joiner sees the backlog followed by every later chunk, with
    no gap and no repeat.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._websocket = websocket
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._held: list[dict] = []
        self._started = False
        self._is_open = True
        self._lock = threading.Lock()
        self._writer_task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._is_open

    def send(self, message: ServerMessage) -> None:
        """Queue a message for delivery. Safe to call from any thread."""
        payload = message.model_dump(mode="json", by_alias=True)
        with self._lock:
            if not self._is_open:
                return
            if not self._started:
                self._held.append(payload)
                return
            self._enqueue(payload)

    def start(self, preamble: Iterable[ServerMessage] = ()) -> None:
        """Deliver ``preamble``, then everything held, then live messages."""
        with self._lock:
            if self._started:
                return
            for message in preamble:
                self._enqueue(message.model_dump(mode="json", by_alias=True))
            for payload in self._held:
                self._enqueue(payload)
            self._held.clear()
            self._started = True
        self._writer_task = self._loop.create_task(self._write_loop())

    async def close(self) -> None:
        """Stop the writer after the queued messages are flushed."""
        with self._lock:
            if not self._is_open:
                return
            self._is_open = False
            self._enqueue(_CLOSE)
        if self._writer_task is not None:
            await self._writer_task

    def _enqueue(self, item: object) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def _write_loop(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                break
            try:
                await self._websocket.send_json(item)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                # Treated as a close; the receive side detaches us.
                logger.debug("Connection dropped while sending: %s", e)
                self._is_open = False
                break
