from collections.abc import Iterable
from dataclasses import dataclass

from symbiote.core.models.topic import AvailableTopics, Topic


@dataclass(frozen=True)
class Negotiation:
    """Outcome of the second party examining the first party's topics."""
    topics: frozenset[Topic]
    offending: AvailableTopics | None = None

    @property
    def accepted(self) -> bool:
        return self.offending is None


def negotiate(
    theirs: AvailableTopics,
    ours: AvailableTopics,
    size_tolerance: int | None = None,
) -> Negotiation:
    """
    Compute the topics both parties will test.

    The common set is the plain key intersection, so the result does not
    depend on which side advertised first. It is rejected when empty (the
    offending set is then everything the peer advertised), or when a common
    topic's size hints differ by more than `size_tolerance` (the offending
    set is then those topics with our own sizes).
    """
    common = theirs.common(ours)
    if not common:
        return Negotiation(frozenset(), offending=theirs)

    if size_tolerance is not None:
        mismatched = [
            topic for topic in common
            if abs(theirs[topic] - ours[topic]) > size_tolerance
        ]
        if mismatched:
            return Negotiation(common, offending=ours.subset(mismatched))

    return Negotiation(common)


def is_valid_start(start: Iterable[Topic], ours: AvailableTopics) -> bool:
    """A Start is acceptable when non-empty and entirely supported locally."""
    topics = set(start)
    return bool(topics) and topics.issubset(ours)


def schedule(topics: Iterable[Topic]) -> list[Topic]:
    """Order in which both parties walk the negotiated topics."""
    return sorted(topics)
