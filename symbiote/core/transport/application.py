from typing import Protocol

from symbiote.core.ports.channel import Channel


class Application(Protocol):
    """
    This interface defines the per-connection handler executed by the Streamer.

    An Application is an asynchronous callable that receives the Channel of a
    single connection. It drives one protocol session by calling
    `channel.receive()` to consume frames and `channel.send(frame)` to
    produce replies.

    The Application runs until it returns or raises an exception. When it exits,
    the underlying connection is closed by the Streamer.

    The Application does not handle framing or transport-level concerns.
    These responsibilities belong to the Protocol and the Streamer.
    """
    async def __call__(self, channel: Channel) -> None:
        ...
