import asyncio
from typing import Any, Dict, List, Optional, Protocol

from ..types import PushMessage


class PushChannel(Protocol):
    """Where graph updates are pushed. Implemented by the transport layer."""

    async def send(self, message: PushMessage) -> None:
        ...


def encode_message(message: PushMessage) -> Dict[str, Any]:
    """Frame a message the way the client expects it on the wire."""
    return {"event": message.event, "data": message.to_payload()}


class QueueChannel:
    """Push channel backed by an asyncio queue.

    The WebSocket endpoint drains it into the socket; tests read it directly.
    """

    def __init__(self, maxsize: int = 0):
        self.queue: "asyncio.Queue[PushMessage]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def send(self, message: PushMessage) -> None:
        if self.closed:
            return
        await self.queue.put(message)

    async def receive(self, timeout: Optional[float] = None) -> PushMessage:
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)

    def drain_nowait(self) -> List[PushMessage]:
        messages = []
        while not self.queue.empty():
            messages.append(self.queue.get_nowait())
        return messages

    def close(self):
        self.closed = True
