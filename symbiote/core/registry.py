import logging
from dataclasses import dataclass
from typing import Iterator

from symbiote.core.catalog.operations import Capability, OperationCodec
from symbiote.core.models.topic import AvailableTopics, Topic, validate_size, validate_topic
from symbiote.core.ports.codec import Codec


@dataclass(frozen=True)
class Registration:
    """Everything a session needs to test one topic."""
    topic: Topic
    codec: Codec
    operations: OperationCodec
    size: int


class CodecRegistry:
    """
    Maps topics to the codec and property-check capabilities of a type.

    The registry is populated once at start-up and frozen before any session
    runs; after that it is only read, so every concurrent session can share
    the same instance without locking.
    """

    def __init__(self) -> None:
        self._entries: dict[Topic, Registration] = {}
        self._frozen = False
        self._logger = logging.getLogger("core.registry")

    def register(
        self,
        topic: Topic,
        codec: Codec,
        *capabilities: Capability,
        size: int | None = None,
    ) -> Registration:
        if self._frozen:
            raise RuntimeError("Registry is frozen, cannot register new topics")

        validate_topic(topic)
        if topic in self._entries:
            raise RuntimeError(f"Codec already registered for '{topic}'")

        entry = Registration(
            topic=topic,
            codec=codec,
            operations=OperationCodec(codec, capabilities),
            size=validate_size(codec.size if size is None else size),
        )
        self._entries[topic] = entry
        self._logger.debug(
            f"Registered topic {topic} with "
            f"{[c.name for c in capabilities]}"
        )
        return entry

    def lookup(self, topic: Topic) -> Registration | None:
        return self._entries.get(topic)

    def available(self) -> AvailableTopics:
        return AvailableTopics({t: e.size for t, e in self._entries.items()})

    def restrict(self, topics: list[Topic]) -> "CodecRegistry":
        """Copy of this registry keeping only `topics`; unknown names are an error."""
        unknown = sorted(set(topics) - set(self._entries))
        if unknown:
            raise KeyError(f"Unknown topic(s): {', '.join(unknown)}")

        registry = CodecRegistry()
        registry._entries = {t: self._entries[t] for t in topics}
        return registry

    def freeze(self) -> "CodecRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, topic: object) -> bool:
        return topic in self._entries

    def __iter__(self) -> Iterator[Registration]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
