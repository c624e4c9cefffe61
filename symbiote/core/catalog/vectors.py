import random
from typing import Any

from symbiote.core.ports.codec import Codec, Json
from symbiote.core.ports.errors import ParseError, preview
from symbiote.core.wire.binary import BinaryReader, pack_length


class VectorCodec(Codec[tuple]):
    """
    Homogeneous sequence. Binary form is an element count prefix of the
    given width followed by the concatenated elements; JSON is an array.
    Values are tuples so that they compare and hash like the other types.
    """

    def __init__(self, element: Codec, width: int) -> None:
        self.element = element
        self.width = width
        self.name = f"Vector{width * 8}<{element.name}>"
        self.size = width
        self.limit = (1 << (8 * width)) - 1

    def generate(self, rng: random.Random, size: int) -> tuple:
        length = rng.randint(0, min(self.limit, max(size, 0)))
        return tuple(self.element.generate(rng, size) for _ in range(length))

    def encode_json(self, value: tuple) -> Json:
        return [self.element.encode_json(item) for item in value]

    def decode_json(self, data: Json) -> tuple:
        if not isinstance(data, list):
            raise ParseError(f"{self.name}: expected array, got {preview(data)}", raw=data)
        if len(data) > self.limit:
            raise ParseError(f"{self.name}: {len(data)} elements exceeds {self.limit}", raw=data)
        return tuple(self.element.decode_json(item) for item in data)

    def encode_binary(self, value: tuple) -> bytes:
        parts = [pack_length(len(value), self.width)]
        parts.extend(self.element.encode_binary(item) for item in value)
        return b"".join(parts)

    def read_binary(self, reader: BinaryReader) -> tuple:
        count = reader.length(self.width)
        if self.element.size > 0 and count > reader.remaining:
            raise ParseError(
                f"{self.name}: {count} elements cannot fit in {reader.remaining} bytes", raw=count
            )
        return tuple(self.element.read_binary(reader) for _ in range(count))


class OptionalCodec(Codec[Any]):
    """
    Nullable value. Binary: 0x00 for absent, 0x01 followed by the value.
    JSON: null for absent, the inner JSON otherwise. The inner type must not
    itself use null in its JSON form.
    """

    def __init__(self, inner: Codec) -> None:
        self.inner = inner
        self.name = f"Optional<{inner.name}>"
        self.size = 1 + inner.size

    def generate(self, rng: random.Random, size: int) -> Any:
        if rng.random() < 0.25:
            return None
        return self.inner.generate(rng, size)

    def encode_json(self, value: Any) -> Json:
        return None if value is None else self.inner.encode_json(value)

    def decode_json(self, data: Json) -> Any:
        return None if data is None else self.inner.decode_json(data)

    def encode_binary(self, value: Any) -> bytes:
        if value is None:
            return b"\x00"
        return b"\x01" + self.inner.encode_binary(value)

    def read_binary(self, reader: BinaryReader) -> Any:
        flag = reader.byte()
        if flag == 0:
            return None
        if flag == 1:
            return self.inner.read_binary(reader)
        raise ParseError(f"{self.name}: invalid presence byte {flag:#x}", raw=flag)
