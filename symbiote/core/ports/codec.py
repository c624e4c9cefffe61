import random
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from symbiote.core.ports.errors import ParseError
from symbiote.core.wire.binary import BinaryReader

T = TypeVar("T")

Json = Any
"""A JSON-compatible Python tree (dict, list, str, int, float, bool, None)."""


class Codec(ABC, Generic[T]):
    """
    Capability bundle for one serializable type.

    Implementations must be:
    - deterministic: the same value always encodes to the same bytes
    - pure: no side effects besides consuming the random generator
    - safe against malformed input: decoders raise ParseError and nothing else

    Binary decoding goes through `read_binary`, which consumes the value from
    a shared BinaryReader, so that containers decode their elements in a
    single pass over the input.
    """

    name: str = ""
    """Canonical type name, used as the default topic."""

    size: int = 0
    """Advertised serialized size hint for this type."""

    distinct: int | None = None
    """Number of distinct values, when small enough to exhaust."""

    @abstractmethod
    def generate(self, rng: random.Random, size: int) -> T:
        """Generate a random value. `size` bounds collection lengths."""

    @abstractmethod
    def encode_json(self, value: T) -> Json:
        ...

    @abstractmethod
    def decode_json(self, data: Json) -> T:
        ...

    @abstractmethod
    def encode_binary(self, value: T) -> bytes:
        ...

    @abstractmethod
    def read_binary(self, reader: BinaryReader) -> T:
        """Consume one value at the reader's position."""

    def decode_binary(self, data: bytes) -> tuple[T, bytes]:
        """Decode a value from the front of `data`, returning the rest."""
        reader = BinaryReader(data)
        value = self.read_binary(reader)
        return value, reader.rest()

    def decode_binary_exact(self, data: bytes) -> T:
        reader = BinaryReader(data)
        value = self.read_binary(reader)
        if reader.remaining:
            raise ParseError(
                f"{self.name}: {reader.remaining} trailing byte(s)", raw=data
            )
        return value

    def equals(self, left: T, right: T) -> bool:
        """Compare two values through their canonical binary form."""
        return self.encode_binary(left) == self.encode_binary(right)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
