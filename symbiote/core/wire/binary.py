import struct

from symbiote.core.ports.errors import ParseError


class VectorWidth:
    """Byte widths of the length prefix for the Vector8/16/32/64 family."""
    VECTOR8: int = 1
    VECTOR16: int = 2
    VECTOR32: int = 4
    VECTOR64: int = 8


def pack_length(length: int, width: int) -> bytes:
    limit = 1 << (8 * width)
    if length >= limit:
        raise ValueError(f"Length {length} does not fit in {width} byte(s)")
    return length.to_bytes(width, "big")


def pack_vector(payload: bytes, width: int = VectorWidth.VECTOR32) -> bytes:
    """Prefix `payload` with its big-endian length."""
    return pack_length(len(payload), width) + payload


class BinaryReader:
    """
    Cursor over an immutable byte string.

    Every read checks bounds first and raises ParseError on truncation, so a
    malformed length prefix can never cause an out-of-range slice to be
    silently accepted.
    """

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def rest(self) -> bytes:
        return self._data[self._pos:]

    def take(self, count: int) -> bytes:
        if count < 0 or self.remaining < count:
            raise ParseError(
                f"Truncated input: need {count} byte(s), have {self.remaining}",
                raw=self._data,
            )
        chunk = self._data[self._pos: self._pos + count]
        self._pos += count
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def unpack(self, fmt: str) -> tuple:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))

    def length(self, width: int) -> int:
        return int.from_bytes(self.take(width), "big")

    def vector(self, width: int = VectorWidth.VECTOR32) -> bytes:
        return self.take(self.length(width))

    def text(self, width: int = VectorWidth.VECTOR32) -> str:
        raw = self.vector(width)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise ParseError(f"Invalid UTF-8 text: {ex}", raw=raw) from ex

    def expect_end(self) -> None:
        if self.remaining:
            raise ParseError(
                f"{self.remaining} trailing byte(s)", raw=self._data
            )
