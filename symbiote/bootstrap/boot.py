import asyncio
import logging
import sys

from symbiote.bootstrap.config.loader import get_cli_args
from symbiote.bootstrap.deps import get_config, get_driver, get_registry
from symbiote.core.connections.client import ClientChannel
from symbiote.core.helpers.utils import setup_logging, setup_signal_handler
from symbiote.core.models.config import ServerConfig
from symbiote.core.models.report import Role, SessionReport
from symbiote.core.ports.render import Renderer
from symbiote.core.protocol.driver import SecondApplication
from symbiote.core.transport.server import MessageServer
from symbiote.infra.report_renderer import get_renderer

logger = logging.getLogger("bootstrap.boot")


def print_report(renderer: Renderer, report: SessionReport) -> None:
    sys.stdout.write(renderer.render(report.to_dict()))
    sys.stdout.write("\n")
    sys.stdout.flush()


async def run_first(renderer: Renderer) -> int:
    config = get_config()
    channel = ClientChannel(
        address=config.client.address,
        max_retries=config.client.max_retries,
        max_frame_size=config.server.max_buffer_size,
    )
    try:
        await channel.connect()
    except ConnectionError as ex:
        logger.error(str(ex))
        return 1

    report = await get_driver(Role.first).run(channel)
    print_report(renderer, report)
    return 0 if report.ok else 1


async def run_second(renderer: Renderer, stop_event: asyncio.Event, once: bool) -> int:
    config = get_config()
    served = asyncio.Event()

    def on_report(report: SessionReport) -> None:
        print_report(renderer, report)
        if once:
            served.set()

    app = SecondApplication(get_driver(Role.second), on_report=on_report)
    server = MessageServer(
        ServerConfig(
            app=app,
            host=config.server.host,
            port=config.server.port,
            backlog=config.server.backlog,
            max_buffer_size=config.server.max_buffer_size,
            timeout_graceful_shutdown=config.server.timeout_graceful_shutdown,
        ),
        loop=asyncio.get_running_loop(),
    )
    await server.start()
    host, port = server.listen
    logger.info(f"Second party listening on {host}:{port}")

    # Signals are delivered between loop iterations, so poll rather than block
    while not stop_event.is_set() and not served.is_set():
        await asyncio.sleep(0.1)

    logger.info("Shutting down")
    await server.shutdown()

    if not app.reports:
        return 0 if stop_event.is_set() else 1
    return 0 if all(report.ok for report in app.reports) else 1


def main() -> None:
    cli = get_cli_args()
    setup_logging(cli.log_level)
    renderer = get_renderer(cli.format)

    if cli.role == "topics":
        sys.stdout.write(renderer.render(get_registry().available().to_dict()))
        sys.stdout.write("\n")
        raise SystemExit(0)

    try:
        with setup_signal_handler() as stop_event:
            if cli.role == "first":
                code = asyncio.run(run_first(renderer))
            else:
                code = asyncio.run(run_second(renderer, stop_event, cli.once))
    except KeyboardInterrupt:
        code = 130

    raise SystemExit(code)
