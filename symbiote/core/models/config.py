from dataclasses import dataclass
from enum import StrEnum

from symbiote.core.transport.application import Application


class SwapPolicy(StrEnum):
    topic = "topic"
    """Run every trial of the topic, then hand the turn to the peer."""

    trial = "trial"
    """Hand the turn to the peer after each trial."""

    never = "never"
    """Only generate when starting a topic as the generating party."""


@dataclass
class SessionConfig:
    """
    Per-session protocol parameters.

    Trial count, turn policy and failure threshold are local decisions of
    each party: the peer only observes them through YourTurn and ImFinished.
    """

    trials: int = 100
    """
    Number of trials this party generates per topic. Capped by the number
    of distinct values of a topic's type.
    """

    swap: SwapPolicy = SwapPolicy.topic
    """
    When this party hands the generating role to its peer.
    """

    max_size: int = 64
    """
    Upper bound of the size parameter given to generators. The size grows
    linearly from 0 to this bound over the trials of a topic.
    """

    reply_timeout: float = 10.0
    """
    Maximum time (in seconds) to wait for the next expected message.
    """

    receive_retries: int = 2
    """
    Number of additional timeout periods tolerated before the session is
    aborted with reason `timeout`.
    """

    max_topic_failures: int | None = None
    """
    Once this many trials of a topic failed, stop generating for it and
    report the topic as aborted. None disables the threshold.
    """

    size_tolerance: int | None = None
    """
    Largest accepted difference between both parties' size hints for a
    topic. None accepts any difference.
    """

    seed: int | None = None
    """
    Seed of the value generator. None draws a fresh seed per session.
    """


@dataclass
class ServerConfig:
    """
    Static configuration for a symbiote MessageServer.
    """
    app: Application
    """
    The per-connection application coroutine with the signature:
        async def app(channel)
    """

    host: str
    """
    IP address or hostname on which the server listens.
    """

    port: int
    """
    TCP port to bind. If set to 0, the OS selects an available port.
    """

    backlog: int = 128
    """
    Maximum number of pending TCP connections waiting for accept().
    """

    max_buffer_size: int = 4 * 1024 * 1024  # 4MB
    """
    Maximum size of the per-connection receive buffer. Frames declaring a
    larger length close the connection.
    """

    timeout_graceful_shutdown: float = 5.0
    """
    Maximum time (in seconds) allowed for graceful shutdown:
    - active connections must close
    - sessions registered in ServerState.tasks must complete
    After this timeout, remaining tasks are cancelled.
    """
