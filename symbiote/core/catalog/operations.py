import random
from dataclasses import dataclass
from typing import Any, Callable

from symbiote.core.ports.codec import Codec, Json
from symbiote.core.ports.errors import ParseError, preview
from symbiote.core.wire.binary import BinaryReader


@dataclass(frozen=True)
class Capability:
    """
    One property check a type supports, e.g. equality or append.

    Capabilities are composed per type as plain tuples. Each one only
    requires the operation it actually exercises, and declares the codec
    used to carry its result over the wire.
    """
    name: str
    arity: int
    perform: Callable[..., Any]
    output: Codec | None = None
    """Result codec. None means the result has the subject's own type."""

    def result_codec(self, subject: Codec) -> Codec:
        return self.output if self.output is not None else subject

    def apply(self, value: Any, argument: Any = None) -> Any:
        if self.arity == 0:
            return self.perform(value)
        return self.perform(value, argument)


@dataclass(frozen=True)
class Operation:
    """A capability selected for one trial, with its argument if unary."""
    name: str
    argument: Any = None


class OperationCodec:
    """
    Encodes the operations available on one subject type.

    JSON: a bare string for a nullary capability, a one-key object mapping
    the capability name to its argument otherwise.
    Binary: a tag byte (capability index) followed by the argument.
    """

    def __init__(self, subject: Codec, capabilities: tuple[Capability, ...]) -> None:
        if not capabilities:
            raise ValueError(f"{subject.name}: at least one capability is required")
        if len(capabilities) > 256:
            raise ValueError(f"{subject.name}: too many capabilities")
        names = [c.name for c in capabilities]
        if len(set(names)) != len(names):
            raise ValueError(f"{subject.name}: duplicate capability names {names}")

        self.subject = subject
        self.capabilities = capabilities
        self._by_name = {c.name: c for c in capabilities}

    def capability(self, name: str) -> Capability:
        try:
            return self._by_name[name]
        except KeyError:
            raise ParseError(f"{self.subject.name}: unknown operation {preview(name)}", raw=name)

    def generate(self, rng: random.Random, size: int, value: Any) -> Operation:
        capability = rng.choice(self.capabilities)
        if capability.arity == 0:
            return Operation(capability.name)

        # Half of the unary checks run against the value itself, so that
        # positive outcomes (equal, compare == 0) are exercised too.
        if rng.random() < 0.5:
            return Operation(capability.name, value)
        return Operation(capability.name, self.subject.generate(rng, size))

    def perform(self, value: Any, operation: Operation) -> tuple[Capability, Any]:
        capability = self.capability(operation.name)
        return capability, capability.apply(value, operation.argument)

    def encode_json(self, operation: Operation) -> Json:
        capability = self.capability(operation.name)
        if capability.arity == 0:
            return capability.name
        return {capability.name: self.subject.encode_json(operation.argument)}

    def decode_json(self, data: Json) -> Operation:
        if isinstance(data, str):
            capability = self.capability(data)
            if capability.arity != 0:
                raise ParseError(f"Operation {preview(data)} requires an argument", raw=data)
            return Operation(capability.name)

        if isinstance(data, dict) and len(data) == 1:
            (name, raw), = data.items()
            capability = self.capability(name)
            if capability.arity != 1:
                raise ParseError(f"Operation {preview(name)} takes no argument", raw=data)
            return Operation(capability.name, self.subject.decode_json(raw))

        raise ParseError(f"Malformed operation: {preview(data)}", raw=data)

    def encode_binary(self, operation: Operation) -> bytes:
        capability = self.capability(operation.name)
        tag = bytes([self.capabilities.index(capability)])
        if capability.arity == 0:
            return tag
        return tag + self.subject.encode_binary(operation.argument)

    def decode_binary(self, data: bytes) -> Operation:
        reader = BinaryReader(data)
        index = reader.byte()
        if index >= len(self.capabilities):
            raise ParseError(f"{self.subject.name}: unknown operation tag {index}", raw=data)

        capability = self.capabilities[index]
        if capability.arity == 0:
            reader.expect_end()
            return Operation(capability.name)

        argument = self.subject.read_binary(reader)
        reader.expect_end()
        return Operation(capability.name, argument)
