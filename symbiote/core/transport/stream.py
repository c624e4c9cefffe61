import asyncio
import logging
import struct

from symbiote.core.ports.channel import ChannelClosed
from symbiote.core.transport.application import Application
from symbiote.core.transport.flow import FlowControl


class Streamer:
    """
    Channel of a single accepted TCP connection.

    It receives complete frames from the Protocol through an internal queue
    and exposes them to the Application via the asynchronous `receive()`
    method. When the Application sends a frame, the Streamer prefixes it with
    its 4-byte big-endian length and writes it to the transport.

    Streamer enforces backpressure using FlowControl. If the transport signals
    that writing is paused, `send()` waits until writing becomes possible again
    before transmitting data.

    The `run_app()` method executes the Application for the lifetime of the
    connection. When the Application returns or raises an exception, the
    Streamer closes the transport and terminates the connection cleanly.

    A `None` pushed into the queue marks the end of the connection: every
    later `receive()` raises ChannelClosed.
    """
    def __init__(
        self,
        transport: asyncio.Transport,
        flow: FlowControl,
        queue: asyncio.Queue[bytes | None]
    ) -> None:
        self.queue = queue
        self._transport = transport
        self._flow = flow
        self._closed = False
        self._logger = logging.getLogger("core.transport.stream")

    async def send(self, frame: bytes) -> None:
        if self._closed or self._transport.is_closing():
            raise ChannelClosed("Connection is closed")

        if self._flow.write_paused:
            await self._flow.drain()

        self._transport.write(struct.pack("!I", len(frame)) + frame)

    async def receive(self) -> bytes:
        if self._closed:
            raise ChannelClosed("Connection is closed")

        frame = await self.queue.get()
        if frame is None:
            self._closed = True
            raise ChannelClosed("Connection lost")
        return frame

    async def close(self) -> None:
        self._closed = True
        self._transport.close()

    async def run_app(self, app: Application) -> None:
        try:
            await app(self)
        except Exception as exc:
            self._logger.error("Exception in Application", exc_info=exc)
        finally:
            self._transport.close()
