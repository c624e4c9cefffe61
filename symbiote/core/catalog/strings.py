import base64
import binascii
import random

from symbiote.core.ports.codec import Codec, Json
from symbiote.core.ports.errors import ParseError, preview
from symbiote.core.wire.binary import BinaryReader, VectorWidth, pack_vector

SURROGATES = range(0xD800, 0xE000)


def random_char(rng: random.Random) -> str:
    """A random Unicode scalar value; never an unpaired surrogate."""
    pick = rng.random()
    if pick < 0.6:
        code = rng.randint(0x20, 0x7E)
    elif pick < 0.9:
        code = rng.randint(0x80, 0xFFFF)
    else:
        code = rng.randint(0x10000, 0x10FFFF)
    if code in SURROGATES:
        code -= 0x800
    return chr(code)


def _limit(width: int) -> int:
    return (1 << (8 * width)) - 1


class StringCodec(Codec[str]):
    """UTF-8 text behind a Vector8/16/32 byte-length prefix."""

    def __init__(self, width: int) -> None:
        self.width = width
        self.name = f"String{width * 8}"
        self.size = width
        self.limit = _limit(width)

    def generate(self, rng: random.Random, size: int) -> str:
        budget = rng.randint(0, min(self.limit, max(size, 0)))
        chars: list[str] = []
        used = 0
        while True:
            char = random_char(rng)
            cost = len(char.encode("utf-8"))
            if used + cost > budget:
                break
            chars.append(char)
            used += cost
        return "".join(chars)

    def check(self, value: str, raw: object = None) -> str:
        try:
            encoded = value.encode("utf-8")
        except UnicodeEncodeError as ex:
            raise ParseError(f"{self.name}: not valid Unicode text", raw=raw) from ex
        if len(encoded) > self.limit:
            raise ParseError(f"{self.name}: {len(encoded)} bytes exceeds {self.limit}", raw=raw)
        return value

    def encode_json(self, value: str) -> Json:
        return value

    def decode_json(self, data: Json) -> str:
        if not isinstance(data, str):
            raise ParseError(f"{self.name}: expected string, got {preview(data)}", raw=data)
        return self.check(data, raw=data)

    def encode_binary(self, value: str) -> bytes:
        return pack_vector(value.encode("utf-8"), self.width)

    def read_binary(self, reader: BinaryReader) -> str:
        return reader.text(self.width)


class BytesCodec(Codec[bytes]):
    """Opaque bytes behind a length prefix. JSON form is standard base64."""

    def __init__(self, width: int) -> None:
        self.width = width
        self.name = f"Bytes{width * 8}"
        self.size = width
        self.limit = _limit(width)

    def generate(self, rng: random.Random, size: int) -> bytes:
        length = rng.randint(0, min(self.limit, max(size, 0)))
        return rng.randbytes(length)

    def encode_json(self, value: bytes) -> Json:
        return base64.b64encode(value).decode("ascii")

    def decode_json(self, data: Json) -> bytes:
        if not isinstance(data, str):
            raise ParseError(f"{self.name}: expected base64 string, got {preview(data)}", raw=data)
        try:
            value = base64.b64decode(data.encode("ascii"), validate=True)
        except (UnicodeEncodeError, binascii.Error) as ex:
            raise ParseError(f"{self.name}: invalid base64: {ex}", raw=data) from ex
        if len(value) > self.limit:
            raise ParseError(f"{self.name}: {len(value)} bytes exceeds {self.limit}", raw=data)
        return value

    def encode_binary(self, value: bytes) -> bytes:
        return pack_vector(bytes(value), self.width)

    def read_binary(self, reader: BinaryReader) -> bytes:
        return reader.vector(self.width)


STRING8 = StringCodec(VectorWidth.VECTOR8)
STRING16 = StringCodec(VectorWidth.VECTOR16)
STRING32 = StringCodec(VectorWidth.VECTOR32)
BYTES8 = BytesCodec(VectorWidth.VECTOR8)
BYTES16 = BytesCodec(VectorWidth.VECTOR16)
BYTES32 = BytesCodec(VectorWidth.VECTOR32)
