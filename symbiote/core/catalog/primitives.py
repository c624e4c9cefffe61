import math
import random
import struct

from symbiote.core.ports.codec import Codec, Json
from symbiote.core.ports.errors import ParseError, preview
from symbiote.core.wire.binary import BinaryReader


class UnitCodec(Codec[None]):
    """The single-valued type. JSON `null`, zero bytes on the wire."""
    name = "Unit"
    size = 0
    distinct = 1

    def generate(self, rng: random.Random, size: int) -> None:
        return None

    def encode_json(self, value: None) -> Json:
        return None

    def decode_json(self, data: Json) -> None:
        if data is not None:
            raise ParseError(f"Unit: expected null, got {preview(data)}", raw=data)
        return None

    def encode_binary(self, value: None) -> bytes:
        return b""

    def read_binary(self, reader: BinaryReader) -> None:
        return None


class BoolCodec(Codec[bool]):
    name = "Bool"
    size = 1
    distinct = 2

    def generate(self, rng: random.Random, size: int) -> bool:
        return rng.random() < 0.5

    def encode_json(self, value: bool) -> Json:
        return bool(value)

    def decode_json(self, data: Json) -> bool:
        if not isinstance(data, bool):
            raise ParseError(f"Bool: expected boolean, got {preview(data)}", raw=data)
        return data

    def encode_binary(self, value: bool) -> bytes:
        return b"\x01" if value else b"\x00"

    def read_binary(self, reader: BinaryReader) -> bool:
        flag = reader.byte()
        if flag not in (0, 1):
            raise ParseError(f"Bool: invalid byte {flag:#x}", raw=flag)
        return flag == 1


class IntegerCodec(Codec[int]):
    """Fixed-width big-endian two's complement (signed) or unsigned integer."""

    def __init__(self, bits: int, signed: bool) -> None:
        self.bits = bits
        self.signed = signed
        self.name = f"{'Int' if signed else 'Uint'}{bits}"
        self.size = bits // 8
        if signed:
            self.minimum = -(1 << (bits - 1))
            self.maximum = (1 << (bits - 1)) - 1
        else:
            self.minimum = 0
            self.maximum = (1 << bits) - 1

    def generate(self, rng: random.Random, size: int) -> int:
        # Bias towards the boundaries, where codecs usually break.
        pick = rng.random()
        if pick < 0.1:
            return self.minimum
        if pick < 0.2:
            return self.maximum
        if pick < 0.3:
            return 0
        return rng.randint(self.minimum, self.maximum)

    def check(self, value: int, raw: object = None) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ParseError(f"{self.name}: expected integer, got {preview(value)}", raw=raw)
        if not self.minimum <= value <= self.maximum:
            raise ParseError(f"{self.name}: {preview(value)} out of range", raw=raw)
        return value

    def encode_json(self, value: int) -> Json:
        return int(value)

    def decode_json(self, data: Json) -> int:
        return self.check(data, raw=data)

    def encode_binary(self, value: int) -> bytes:
        return int(value).to_bytes(self.size, "big", signed=self.signed)

    def read_binary(self, reader: BinaryReader) -> int:
        return int.from_bytes(reader.take(self.size), "big", signed=self.signed)


class FloatCodec(Codec[float]):
    """IEEE 754 big-endian. Only finite values are generated or accepted in JSON."""

    def __init__(self, bits: int) -> None:
        self.bits = bits
        self.name = f"Float{bits}"
        self.size = bits // 8
        self._fmt = ">f" if bits == 32 else ">d"

    def normalize(self, value: float) -> float:
        return struct.unpack(self._fmt, struct.pack(self._fmt, value))[0]

    def generate(self, rng: random.Random, size: int) -> float:
        pick = rng.random()
        if pick < 0.1:
            return 0.0
        if pick < 0.2:
            return self.normalize(rng.uniform(-1.0, 1.0))
        magnitude = 1e30 if self.bits == 32 else 1e300
        return self.normalize(rng.uniform(-magnitude, magnitude))

    def encode_json(self, value: float) -> Json:
        return float(value)

    def decode_json(self, data: Json) -> float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise ParseError(f"{self.name}: expected number, got {preview(data)}", raw=data)
        # JSON integers are unbounded
        try:
            value = float(data)
        except OverflowError as ex:
            raise ParseError(f"{self.name}: number out of range", raw=data) from ex
        if not math.isfinite(value):
            raise ParseError(f"{self.name}: non-finite value", raw=data)
        try:
            return self.normalize(value)
        except (OverflowError, struct.error) as ex:
            raise ParseError(f"{self.name}: {value} out of range", raw=data) from ex

    def encode_binary(self, value: float) -> bytes:
        return struct.pack(self._fmt, value)

    def read_binary(self, reader: BinaryReader) -> float:
        (value,) = reader.unpack(self._fmt)
        return value


UNIT = UnitCodec()
BOOL = BoolCodec()
INT8 = IntegerCodec(8, signed=True)
INT16 = IntegerCodec(16, signed=True)
INT32 = IntegerCodec(32, signed=True)
INT64 = IntegerCodec(64, signed=True)
UINT8 = IntegerCodec(8, signed=False)
UINT16 = IntegerCodec(16, signed=False)
UINT32 = IntegerCodec(32, signed=False)
UINT64 = IntegerCodec(64, signed=False)
FLOAT32 = FloatCodec(32)
FLOAT64 = FloatCodec(64)
