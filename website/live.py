"""
Live statistics push.

Viewers subscribe through a long-lived ``text/event-stream`` response.
The broadcaster only knows connections as write sinks; the HTTP layer
feeds each sink's queue into its streaming response.
"""
import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Protocol

import structlog

from error_handling.errors import ConnectionWriteError
from monitoring.cache_metrics import LIVE_BROADCASTS, LIVE_CONNECTIONS, LIVE_WRITE_FAILURES

logger = structlog.get_logger()


def format_event(stats: Mapping[str, Any]) -> str:
    """Server-sent event carrying a statistics snapshot."""
    return f"data: {json.dumps(stats, default=str)}\n\n"


class LiveSink(Protocol):
    async def write(self, data: str) -> None:
        ...

    async def close(self) -> None:
        ...


class QueueSink:
    """Sink backed by a bounded queue; a client that falls behind is dropped."""

    def __init__(self, max_pending: int = 16):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    async def write(self, data: str) -> None:
        if self.closed:
            raise ConnectionWriteError("connection closed")
        try:
            self.queue.put_nowait(data)
        except asyncio.QueueFull:
            raise ConnectionWriteError("connection is not keeping up") from None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self.queue.put_nowait(None)
                break
            except asyncio.QueueFull:
                self.queue.get_nowait()

    async def stream(self) -> AsyncIterator[str]:
        while True:
            data = await self.queue.get()
            if data is None:
                return
            yield data


class LiveBroadcaster:
    """Registry of open live connections."""

    def __init__(self):
        self.connections: Dict[str, LiveSink] = {}

    def __len__(self) -> int:
        return len(self.connections)

    def subscribe(self, sink: LiveSink) -> str:
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = sink
        LIVE_CONNECTIONS.set(len(self.connections))
        logger.debug("live_subscribed", connection=connection_id, total=len(self.connections))
        return connection_id

    def unsubscribe(self, connection_id: str) -> Optional[LiveSink]:
        sink = self.connections.pop(connection_id, None)
        LIVE_CONNECTIONS.set(len(self.connections))
        if sink is not None:
            logger.debug("live_unsubscribed", connection=connection_id, total=len(self.connections))
        return sink

    async def broadcast(self, payload: str) -> int:
        """
        Write the payload to every connection.

        Returns:
            Number of connections the payload was delivered to
        """
        targets = list(self.connections.items())
        if not targets:
            return 0

        results = await asyncio.gather(
            *(sink.write(payload) for _, sink in targets),
            return_exceptions=True
        )

        delivered = 0
        for (connection_id, sink), result in zip(targets, results):
            if isinstance(result, Exception):
                LIVE_WRITE_FAILURES.inc()
                logger.warning("live_write_failed", connection=connection_id, error=str(result))
                self.unsubscribe(connection_id)
                await self._close_quietly(connection_id, sink)
            else:
                delivered += 1

        LIVE_BROADCASTS.inc()
        return delivered

    async def close_all(self) -> None:
        for connection_id in list(self.connections):
            sink = self.unsubscribe(connection_id)
            await self._close_quietly(connection_id, sink)

    async def _close_quietly(self, connection_id: str, sink: LiveSink) -> None:
        try:
            await sink.close()
        except Exception as e:
            logger.debug("live_close_failed", connection=connection_id, error=str(e))
