import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from symbiote.core.transport.protocol import Protocol


@dataclass
class ServerState:
    """
    Shared runtime state for a MessageServer.

    This object is mutated by:
    - Protocol: adds/removes active connections, registers session tasks
    - MessageServer.shutdown(): waits for connections and tasks to complete
    """
    connections: set["Protocol"] = field(default_factory=set)
    """
    Set of active Protocol instances. Each TCP connection corresponds
    to one Protocol, and to one protocol session.
    """

    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    """
    Set of session tasks. Each task removes itself via
    task.add_done_callback(tasks.discard) to enable clean shutdown.
    """
