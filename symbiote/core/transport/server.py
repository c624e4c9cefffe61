import asyncio
import logging

from symbiote.core.models.config import ServerConfig
from symbiote.core.models.state import ServerState
from symbiote.core.transport.protocol import Protocol


class MessageServer:
    """
    Owns the lifecycle of the TCP server the second party listens on.

    It binds to the configured host and port and dispatches every new
    connection to a Protocol instance. Each connection runs its own session
    through the configured Application; sessions share nothing but the
    read-only codec registry.

    On shutdown, MessageServer closes the listening socket, asks all active
    connections to shut down, and waits for both connections and session
    tasks to complete. If the graceful shutdown timeout is exceeded, any
    remaining tasks are cancelled and an error is logged.
    """
    def __init__(
        self,
        config: ServerConfig,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._config = config
        self._loop = loop or asyncio.get_event_loop()
        self.state = ServerState()
        self._logger = logging.getLogger("core.transport.server")

        self._server: asyncio.AbstractServer | None = None

    def create_protocol(self) -> asyncio.Protocol:
        return Protocol(
            config=self._config,
            server_state=self.state,
            loop=self._loop
        )

    @property
    def running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def listen(self) -> tuple[str, int]:
        if self._server is None or not self._server.sockets:
            return self._config.host, self._config.port
        host, port = self._server.sockets[0].getsockname()[:2]
        return host, port

    async def start(self) -> None:
        config = self._config
        self._server = await self._loop.create_server(
            self.create_protocol,
            host=config.host,
            port=config.port,
            backlog=config.backlog,
        )

    async def shutdown(self) -> None:
        if self._server:
            self._server.close()

        for connection in self.state.connections.copy():
            connection.shutdown()

        try:
            await asyncio.wait_for(
                self._wait_task_complete(),
                timeout=self._config.timeout_graceful_shutdown
            )
        except asyncio.TimeoutError:
            self._logger.error(
                f"Cancel {len(self.state.tasks)} running session(s), "
                f"timeout graceful shutdown: {self.state.tasks}"
            )
            for task in self.state.tasks:
                task.cancel("Task cancelled, timeout graceful shutdown exceeded")

    async def _wait_task_complete(self) -> None:
        if self.state.connections:
            self._logger.info("Waiting for peer connections to close.")

        while self.state.connections:
            await asyncio.sleep(0.1)

        if self.state.tasks:
            self._logger.info("Waiting for sessions to complete.")

        while self.state.tasks:
            await asyncio.sleep(0.1)

        if self._server:
            await self._server.wait_closed()
