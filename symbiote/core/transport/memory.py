import asyncio

from symbiote.core.ports.channel import ChannelClosed

_CLOSED = None


class MemoryChannel:
    """
    In-process Channel endpoint backed by asyncio queues.

    Two endpoints created by `channel_pair()` are cross-wired: what one sends
    the other receives, in order. Closing either endpoint wakes the peer's
    pending `receive()` with ChannelClosed.
    """

    def __init__(self, inbox: asyncio.Queue, outbox: asyncio.Queue) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False
        self.sent: list[bytes] = []

    async def send(self, frame: bytes) -> None:
        if self._closed:
            raise ChannelClosed("Channel is closed")
        self.sent.append(bytes(frame))
        self._outbox.put_nowait(bytes(frame))

    async def receive(self) -> bytes:
        if self._closed:
            raise ChannelClosed("Channel is closed")
        frame = await self._inbox.get()
        if frame is _CLOSED:
            self._closed = True
            raise ChannelClosed("Peer closed the channel")
        return frame

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._outbox.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed


def channel_pair() -> tuple[MemoryChannel, MemoryChannel]:
    left: asyncio.Queue = asyncio.Queue()
    right: asyncio.Queue = asyncio.Queue()
    return MemoryChannel(left, right), MemoryChannel(right, left)
