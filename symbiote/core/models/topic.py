from collections.abc import Iterable, Iterator, Mapping

from symbiote.core.ports.errors import preview

Topic = str
"""Name of a registered type under test. Compared byte-wise as UTF-8."""

Size = int
"""Advisory serialized size hint, 0 .. 2**31 - 1."""

MAX_TOPIC_BYTES = 2**32 - 1
MAX_SIZE = 2**31 - 1


def validate_topic(topic: Topic) -> Topic:
    if not isinstance(topic, str):
        raise ValueError(f"Topic must be a string, got {type(topic).__name__}")
    try:
        encoded = topic.encode("utf-8")
    except UnicodeEncodeError as ex:
        raise ValueError(f"Topic {topic!r} is not valid UTF-8: {ex}") from ex
    if len(encoded) > MAX_TOPIC_BYTES:
        raise ValueError("Topic exceeds 2**32 - 1 bytes")
    return topic


def validate_size(size: Size) -> Size:
    if isinstance(size, bool) or not isinstance(size, int):
        raise ValueError(f"Size must be an integer, got {preview(size)}")
    if not 0 <= size <= MAX_SIZE:
        raise ValueError(f"Size {preview(size)} out of range 0..{MAX_SIZE}")
    return size


class AvailableTopics(Mapping[Topic, Size]):
    """
    Immutable mapping from topic to size hint advertised by one peer.

    Built once per session from the local registry, exchanged once, and
    never mutated afterwards. Iteration is in sorted topic order so that
    every encoding of the same mapping is identical.
    """

    __slots__ = ("_topics",)

    def __init__(self, topics: Mapping[Topic, Size] | None = None) -> None:
        # Validate before sorting: decoded maps may mix key types
        items = [
            (validate_topic(topic), validate_size(size))
            for topic, size in dict(topics or {}).items()
        ]
        self._topics = dict(sorted(items, key=lambda item: item[0]))

    def __getitem__(self, topic: Topic) -> Size:
        return self._topics[topic]

    def __iter__(self) -> Iterator[Topic]:
        return iter(self._topics)

    def __len__(self) -> int:
        return len(self._topics)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._topics) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._topics.items()))

    def __repr__(self) -> str:
        return f"AvailableTopics({self._topics!r})"

    def common(self, other: Iterable[Topic]) -> frozenset[Topic]:
        """Topics present in both this mapping and `other`."""
        return frozenset(self._topics).intersection(other)

    def subset(self, topics: Iterable[Topic]) -> "AvailableTopics":
        return AvailableTopics({t: self._topics[t] for t in topics if t in self._topics})

    def to_dict(self) -> dict[Topic, Size]:
        return dict(self._topics)
