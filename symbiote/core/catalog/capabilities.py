from typing import Any, Callable

from symbiote.core.catalog.operations import Capability
from symbiote.core.catalog.primitives import BOOL, INT8, UINT32


def eq() -> Capability:
    return Capability("eq", 1, lambda value, other: value == other, BOOL)


def compare() -> Capability:
    def perform(value: Any, other: Any) -> int:
        return (value > other) - (value < other)

    return Capability("compare", 1, perform, INT8)


def append(combine: Callable[[Any, Any], Any]) -> Capability:
    """Semigroup append; the result has the subject type."""
    return Capability("append", 1, combine)


def empty(unit: Any) -> Capability:
    """Monoid identity element; ignores the value it is applied to."""
    return Capability("empty", 0, lambda value: unit)


def identity() -> Capability:
    """Echo the decoded value back, re-encoded by the operating party."""
    return Capability("identity", 0, lambda value: value)


def length() -> Capability:
    return Capability("length", 0, lambda value: len(value), UINT32)


def wrapping_add(bits: int, signed: bool) -> Callable[[int, int], int]:
    modulus = 1 << bits
    half = 1 << (bits - 1)

    def add(left: int, right: int) -> int:
        total = (left + right) % modulus
        if signed and total >= half:
            total -= modulus
        return total

    return add
