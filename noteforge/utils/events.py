import asyncio
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class EventManager:
    """Simple manager for Server-Sent Events (SSE)."""

    def __init__(self):
        # One queue per open connection
        self.queues: set[asyncio.Queue[str]] = set()

    @property
    def connection_count(self) -> int:
        return len(self.queues)

    async def subscribe(self) -> AsyncIterator[str]:
        """Subscribe to collection events."""
        queue: asyncio.Queue[str] = asyncio.Queue()
        self.queues.add(queue)

        logger.info(f"[SSE] Client subscribed. Active connections: {len(self.queues)}")

        try:
            # Send initial ping to confirm connection
            yield ": ping\n\n"

            while True:
                data = await queue.get()
                yield data
        finally:
            self.queues.discard(queue)
            logger.info("[SSE] Client unsubscribed.")

    def publish(self, event_name: str, data: str) -> None:
        """Queue an event for every connected client without awaiting."""
        if not self.queues:
            logger.debug(f"[SSE] No active connections to broadcast '{event_name}'")
            return
        message = f"event: {event_name}\ndata: {data}\n\n"
        for queue in self.queues:
            queue.put_nowait(message)

    async def broadcast(self, event_name: str, data: str) -> None:
        """Broadcast an event to all connected clients."""
        logger.debug(
            f"[SSE] Broadcasting event '{event_name}' to {len(self.queues)} connections"
        )
        self.publish(event_name, data)
