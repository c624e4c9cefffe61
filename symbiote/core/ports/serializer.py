from typing import Protocol, Any


class Serializer(Protocol):
    """
    Turns the JSON tree of a protocol message into a frame and back.

    Implementations must be:
    - deterministic
    - pure (no side effects)
    - safe against malformed input (raise ParseError)
    """

    def serialize(self, message: Any) -> bytes:
        """Encode a JSON-compatible tree into bytes suitable for transport."""

    def deserialize(self, data: bytes) -> Any:
        """Decode bytes received from the network into a JSON-compatible tree."""
