import asyncio
import contextlib
import logging
import signal
import sys
import threading
from types import FrameType
from typing import Generator

SHUTDOWN_SIGNALS = (
    signal.SIGINT,
    signal.SIGTERM,
)

if sys.platform == "win32":
    SHUTDOWN_SIGNALS += (signal.SIGBREAK,)


@contextlib.contextmanager
def setup_signal_handler() -> Generator[asyncio.Event, None, None]:
    """
    Turn shutdown signals into an asyncio.Event for the serving loop, and
    replay them with the original handlers once the block exits.
    """
    stop_event = asyncio.Event()

    if threading.current_thread() is not threading.main_thread():
        yield stop_event
        return

    captured_signals: list[int] = []

    def handle(sig: int, frame: FrameType | None) -> None:
        captured_signals.append(sig)
        stop_event.set()

    original_handlers = {
        sig: signal.signal(sig, handle)
        for sig in SHUTDOWN_SIGNALS
    }

    try:
        yield stop_event
    finally:
        for sig, old in original_handlers.items():
            signal.signal(sig, old)

        # A second signal while shutting down must still reach the default handler
        for sig in reversed(captured_signals[1:]):
            if original_handlers[sig] is not handle:
                signal.raise_signal(sig)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s',
    )
