import asyncio
import struct

import pytest

from symbiote.core.connections.client import ClientChannel
from symbiote.core.models.config import ServerConfig
from symbiote.core.models.report import Role
from symbiote.core.ports.channel import ChannelClosed
from symbiote.core.protocol.driver import Driver, SecondApplication
from symbiote.core.throttling.backoff import ExponentialBackoff
from symbiote.core.transport.server import MessageServer


def server_config(app, max_buffer_size: int = 1024, timeout_graceful_shutdown: float = 1.0) -> ServerConfig:
    return ServerConfig(
        app=app,
        host="127.0.0.1",
        port=0,
        backlog=10,
        max_buffer_size=max_buffer_size,
        timeout_graceful_shutdown=timeout_graceful_shutdown,
    )


async def start_server(app, **kwargs) -> MessageServer:
    server = MessageServer(server_config(app, **kwargs), loop=asyncio.get_running_loop())
    await server.start()
    return server


@pytest.mark.it
@pytest.mark.asyncio
async def test_echo_through_client_channel():
    async def app(channel):
        frame = await channel.receive()
        await channel.send(frame[::-1])

    server = await start_server(app)
    host, port = server.listen

    client = ClientChannel(f"{host}:{port}", max_retries=0)
    await client.connect()
    await client.send(b"abc")
    assert await asyncio.wait_for(client.receive(), timeout=2) == b"cba"

    with pytest.raises(ChannelClosed):
        await asyncio.wait_for(client.receive(), timeout=2)

    await client.close()
    await server.shutdown()


@pytest.mark.it
@pytest.mark.asyncio
async def test_full_session_over_tcp(small_registry, message_codec, session_config):
    app = SecondApplication(Driver(Role.second, small_registry, message_codec, session_config))
    server = await start_server(app, max_buffer_size=64 * 1024)
    host, port = server.listen

    client = ClientChannel(f"{host}:{port}", max_retries=0)
    await client.connect()
    first = Driver(Role.first, small_registry, message_codec, session_config)
    report = await asyncio.wait_for(first.run(client), timeout=10)

    await server.shutdown()

    assert report.ok
    assert report.passed > 0
    assert len(app.reports) == 1
    assert app.reports[0].ok
    assert app.reports[0].passed == report.passed


@pytest.mark.it
@pytest.mark.asyncio
async def test_sessions_run_concurrently(small_registry, binary_codec, session_config):
    app = SecondApplication(Driver(Role.second, small_registry, binary_codec, session_config))
    server = await start_server(app, max_buffer_size=64 * 1024)
    host, port = server.listen

    async def one_session():
        client = ClientChannel(f"{host}:{port}", max_retries=0)
        await client.connect()
        return await Driver(Role.first, small_registry, binary_codec, session_config).run(client)

    reports = await asyncio.wait_for(asyncio.gather(*(one_session() for _ in range(3))), timeout=10)
    await server.shutdown()

    assert all(r.ok for r in reports)
    assert len(app.reports) == 3


@pytest.mark.it
@pytest.mark.asyncio
async def test_oversized_frame_closes_connection():
    received = []

    async def app(channel):
        received.append(await channel.receive())

    server = await start_server(app)
    host, port = server.listen

    reader, writer = await asyncio.open_connection(host, port)
    writer.write(struct.pack("!I", 4096) + b"x")
    await writer.drain()

    assert await asyncio.wait_for(reader.read(), timeout=2) == b""
    writer.close()
    await writer.wait_closed()
    await server.shutdown()

    assert received == []


@pytest.mark.it
@pytest.mark.asyncio
async def test_shutdown_with_open_connection():
    async def app(channel):
        await channel.receive()

    server = await start_server(app)
    host, port = server.listen

    await asyncio.open_connection(host, port)
    await asyncio.sleep(0.05)

    await server.shutdown()

    assert len(server.state.connections) == 0
    assert not server.running


@pytest.mark.it
@pytest.mark.asyncio
async def test_shutdown_timeout_cancels_tasks():
    task_started = asyncio.Event()

    async def app(channel):
        async def long_task():
            task_started.set()
            await asyncio.sleep(999)

        t = asyncio.create_task(long_task())
        server.state.tasks.add(t)
        await channel.receive()

    server = await start_server(app, timeout_graceful_shutdown=0.2)
    host, port = server.listen

    reader, writer = await asyncio.open_connection(host, port)
    writer.write(struct.pack("!I", 1) + b"x")
    await writer.drain()

    await task_started.wait()

    await server.shutdown()
    await asyncio.sleep(0)
    assert len(server.state.tasks) == 1
    assert all(t.cancelled() for t in server.state.tasks)


@pytest.mark.it
@pytest.mark.asyncio
async def test_client_gives_up_after_max_retries(unused_tcp_port):
    client = ClientChannel(
        f"127.0.0.1:{unused_tcp_port}",
        backoff=ExponentialBackoff(initial=0.01, maximum=0.01, jitter=0),
        max_retries=2,
    )

    with pytest.raises(ConnectionError):
        await client.connect()
    assert not client.connected


@pytest.mark.it
@pytest.mark.asyncio
async def test_closed_client_rejects_io():
    client = ClientChannel("127.0.0.1:1", max_retries=0)
    await client.close()

    with pytest.raises(ChannelClosed):
        await client.send(b"x")
    with pytest.raises(ChannelClosed):
        await client.receive()
    with pytest.raises(ChannelClosed):
        await client.connect()
