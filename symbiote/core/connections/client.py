import asyncio
import logging
import struct

from symbiote.core.ports.channel import ChannelClosed
from symbiote.core.throttling.backoff import ExponentialBackoff


class ClientChannel:
    """
    Channel to the second party, over a TCP connection opened by the first
    party.

    `connect()` retries with a bounded exponential backoff so that a first
    party started slightly before its peer does not fail immediately. The
    protocol is half-duplex, so frames are read directly by `receive()`
    without a background loop. Frames are a 4-byte big-endian length prefix
    followed by the payload.

    Closing is terminal: once closed, the channel does not reconnect and
    every send/receive raises ChannelClosed.
    """
    def __init__(
        self,
        address: str,
        backoff: ExponentialBackoff | None = None,
        max_retries: int = 10,
        max_frame_size: int = 4 * 1024 * 1024,
    ) -> None:
        self._address = address
        self._backoff = backoff or ExponentialBackoff()
        self._max_retries = max_retries
        self._max_frame_size = max_frame_size

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

        self.connected = False
        self._stopped = False
        # Length of a frame whose header was read by a cancelled receive()
        self._pending_length: int | None = None

        self._logger = logging.getLogger("core.connections.client")

    async def connect(self) -> None:
        """
        Establish the TCP connection to the peer.

        Raises ConnectionError once the retry limit is reached.
        """
        if self._stopped:
            raise ChannelClosed("Channel already closed")

        host, port = self._address.rsplit(":", 1)
        retries = 0
        while not self.connected:
            try:
                self._reader, self._writer = await asyncio.open_connection(
                    host=host,
                    port=int(port),
                )
                self.connected = True
                self._backoff.reset()
                self._logger.info(f"Connected to {self._address}")
            except OSError as ex:
                retries += 1
                if retries > self._max_retries:
                    raise ConnectionError(
                        f"Unable to connect to {self._address} after {retries} attempts"
                    ) from ex

                delay = self._backoff.next_delay()
                self._logger.warning(
                    f"Connect failed to {self._address}: {ex}. "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def send(self, frame: bytes) -> None:
        writer = self._require_writer()
        try:
            writer.write(struct.pack("!I", len(frame)) + frame)
            await writer.drain()
        except ConnectionError as ex:
            await self._disconnect()
            raise ChannelClosed(f"Connection reset by {self._address}: {ex}") from ex

    async def receive(self) -> bytes:
        if self._reader is None or not self.connected:
            raise ChannelClosed("Channel is not connected")
        try:
            if self._pending_length is None:
                header = await self._reader.readexactly(4)
                length = struct.unpack("!I", header)[0]
                if length > self._max_frame_size:
                    await self._disconnect()
                    raise ChannelClosed(f"Frame of {length} bytes exceeds limit")
                self._pending_length = length
            frame = await self._reader.readexactly(self._pending_length)
            self._pending_length = None
            return frame
        except asyncio.IncompleteReadError as ex:
            await self._disconnect()
            raise ChannelClosed(f"Peer {self._address} disconnected") from ex
        except ConnectionError as ex:
            await self._disconnect()
            raise ChannelClosed(f"Connection to {self._address} lost: {ex}") from ex

    async def close(self) -> None:
        """
        Permanently shut down the channel. Safe to call multiple times.
        """
        self._stopped = True
        await self._disconnect()

    def _require_writer(self) -> asyncio.StreamWriter:
        if self._stopped or self._writer is None or not self.connected:
            raise ChannelClosed("Channel is not connected")
        return self._writer

    async def _disconnect(self) -> None:
        self.connected = False
        self._pending_length = None
        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except ConnectionError:
                pass
            self._writer = None
            self._reader = None
