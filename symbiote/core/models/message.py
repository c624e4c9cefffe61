from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from symbiote.core.models.topic import AvailableTopics, Topic

P = TypeVar("P")
"""
Payload representation. A JSON tree under the JSON encoding, raw bytes
under the binary encoding. Both share the variant definitions below.
"""


# Generating: sent by the party that produced the value.

@dataclass(frozen=True)
class Generated(Generic[P]):
    value: P
    operation: P


@dataclass(frozen=True)
class BadResult(Generic[P]):
    result: P


@dataclass(frozen=True)
class YourTurn:
    pass


@dataclass(frozen=True)
class ImFinished:
    pass


@dataclass(frozen=True)
class NoParseOperated(Generic[P]):
    result: P


Generating = Union[Generated[P], BadResult[P], YourTurn, ImFinished, NoParseOperated[P]]


# Operating: sent by the party that applied the operation.

@dataclass(frozen=True)
class Operated(Generic[P]):
    result: P


@dataclass(frozen=True)
class NoParseValue(Generic[P]):
    value: P


@dataclass(frozen=True)
class NoParseOperation(Generic[P]):
    operation: P


Operating = Union[Operated[P], NoParseValue[P], NoParseOperation[P]]


# First: envelope of every message the first party sends.

@dataclass(frozen=True)
class Topics:
    topics: AvailableTopics


@dataclass(frozen=True)
class BadStartSubset:
    pass


@dataclass(frozen=True)
class FirstGenerating(Generic[P]):
    topic: Topic
    generating: Generating[P]


@dataclass(frozen=True)
class FirstOperating(Generic[P]):
    topic: Topic
    operating: Operating[P]


First = Union[Topics, BadStartSubset, FirstGenerating[P], FirstOperating[P]]


# Second: envelope of every message the second party sends.

@dataclass(frozen=True)
class BadTopics:
    topics: AvailableTopics


@dataclass(frozen=True)
class Start:
    topics: frozenset[Topic]


@dataclass(frozen=True)
class SecondOperating(Generic[P]):
    operating: Operating[P]


@dataclass(frozen=True)
class SecondGenerating(Generic[P]):
    generating: Generating[P]


Second = Union[BadTopics, Start, SecondOperating[P], SecondGenerating[P]]


def describe(message: Any) -> str:
    """Short human-readable name of a message, for logs."""
    inner = getattr(message, "generating", None) or getattr(message, "operating", None)
    if inner is not None:
        return f"{type(message).__name__}/{type(inner).__name__}"
    return type(message).__name__
