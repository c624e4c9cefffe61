from typing import Protocol


class ChannelClosed(ConnectionError):
    """The remote peer closed the channel, or it was closed locally."""


class ChannelTimeout(TimeoutError):
    """No frame arrived within the allotted time."""


class Channel(Protocol):
    """
    Bidirectional, ordered and reliable frame channel between two peers.

    A frame is an opaque byte string; message encoding is the job of the
    MessageCodec. `receive()` blocks until a frame is available and raises
    ChannelClosed once the channel is gone. Implementations never interpret
    frame contents.
    """

    async def send(self, frame: bytes) -> None:
        ...

    async def receive(self) -> bytes:
        ...

    async def close(self) -> None:
        ...
