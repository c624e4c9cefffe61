from symbiote.core.catalog import primitives as p
from symbiote.core.catalog import strings as s
from symbiote.core.catalog.capabilities import (
    append,
    compare,
    empty,
    eq,
    identity,
    length,
    wrapping_add,
)
from symbiote.core.catalog.vectors import OptionalCodec, VectorCodec
from symbiote.core.registry import CodecRegistry
from symbiote.core.wire.binary import VectorWidth


def default_registry() -> CodecRegistry:
    """Registry holding the whole built-in catalog, already frozen."""
    registry = CodecRegistry()

    registry.register(p.UNIT.name, p.UNIT, eq(), identity())
    registry.register(
        p.BOOL.name, p.BOOL,
        eq(), compare(), append(lambda a, b: a or b), empty(False), identity(),
    )

    for codec in (p.INT8, p.INT16, p.INT32, p.INT64, p.UINT8, p.UINT16, p.UINT32, p.UINT64):
        registry.register(
            codec.name, codec,
            eq(), compare(), append(wrapping_add(codec.bits, codec.signed)), empty(0), identity(),
        )

    for codec in (p.FLOAT32, p.FLOAT64):
        registry.register(codec.name, codec, eq(), compare(), identity())

    for codec in (s.STRING8, s.STRING16, s.STRING32):
        registry.register(codec.name, codec, eq(), compare(), length(), empty(""), identity())

    for codec in (s.BYTES8, s.BYTES16, s.BYTES32):
        registry.register(codec.name, codec, eq(), length(), empty(b""), identity())

    ints = VectorCodec(p.INT32, VectorWidth.VECTOR8)
    registry.register(ints.name, ints, eq(), length(), empty(()), identity())

    texts = VectorCodec(s.STRING8, VectorWidth.VECTOR16)
    registry.register(texts.name, texts, eq(), length(), empty(()), identity())

    optional = OptionalCodec(p.INT32)
    registry.register(optional.name, optional, eq(), identity())

    return registry.freeze()
