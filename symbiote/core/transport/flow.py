import asyncio


class FlowControl:
    """
    Writable state of an asyncio transport, as seen by the Streamer.

    The Protocol forwards pause_writing/resume_writing callbacks here, and
    the Streamer awaits `drain()` before writing a frame, so that a slow peer
    applies backpressure to the session instead of growing the transport
    buffer without bound.
    """

    def __init__(self) -> None:
        self._writable = asyncio.Event()
        self._writable.set()
        self.write_paused = False

    async def drain(self) -> None:
        """Wait until the transport accepts writes again."""
        await self._writable.wait()

    def pause_writing(self) -> None:
        self.write_paused = True
        self._writable.clear()

    def resume_writing(self) -> None:
        if self.write_paused:
            self.write_paused = False
            self._writable.set()
