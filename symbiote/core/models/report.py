from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from symbiote.core.models.topic import Topic


class Role(StrEnum):
    first = "first"
    second = "second"


class TopicStatus(StrEnum):
    pending = "pending"
    finished = "finished"
    aborted = "aborted"


class SessionOutcome(StrEnum):
    completed = "completed"
    aborted = "aborted"


class AbortReason(StrEnum):
    """Structured reason why a whole session stopped early."""
    bad_topics = "bad_topics"
    bad_start_subset = "bad_start_subset"
    malformed_message = "malformed_message"
    unexpected_message = "unexpected_message"
    topic_mismatch = "topic_mismatch"
    timeout = "timeout"
    channel_closed = "channel_closed"
    internal_error = "internal_error"


class FailureKind(StrEnum):
    bad_result = "bad_result"
    no_parse_value = "no_parse_value"
    no_parse_operation = "no_parse_operation"
    no_parse_operated = "no_parse_operated"
    timeout = "timeout"


@dataclass
class TrialFailure:
    topic: Topic
    kind: FailureKind
    generator: Role
    """Which party generated the failing trial."""

    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "kind": str(self.kind),
            "generator": str(self.generator),
            "detail": self.detail,
        }


@dataclass
class TopicTally:
    passed: int = 0
    failed: int = 0
    aborted: int = 0
    status: TopicStatus = TopicStatus.pending

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.aborted

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": str(self.status),
            "passed": self.passed,
            "failed": self.failed,
            "aborted": self.aborted,
        }


@dataclass
class SessionReport:
    """
    Result of one session as seen by one party.

    Trials are counted on both sides: the generating party knows the result
    of its own trials, the operating party learns about failures through
    BadResult/NoParseOperated and about passes when the generator moves on.
    """
    role: Role
    outcome: SessionOutcome = SessionOutcome.completed
    reason: AbortReason | None = None
    detail: str = ""
    topics: dict[Topic, TopicTally] = field(default_factory=dict)
    failures: list[TrialFailure] = field(default_factory=list)

    def tally(self, topic: Topic) -> TopicTally:
        return self.topics.setdefault(topic, TopicTally())

    def abort(self, reason: AbortReason, detail: str = "") -> None:
        if self.outcome is SessionOutcome.aborted:
            return
        self.outcome = SessionOutcome.aborted
        self.reason = reason
        self.detail = detail

    @property
    def passed(self) -> int:
        return sum(t.passed for t in self.topics.values())

    @property
    def failed(self) -> int:
        return sum(t.failed for t in self.topics.values())

    @property
    def aborted(self) -> int:
        return sum(t.aborted for t in self.topics.values())

    @property
    def ok(self) -> bool:
        return (
            self.outcome is SessionOutcome.completed
            and self.failed == 0
            and self.aborted == 0
            and all(t.status is TopicStatus.finished for t in self.topics.values())
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": str(self.role),
            "outcome": str(self.outcome),
            "reason": str(self.reason) if self.reason else None,
            "detail": self.detail,
            "ok": self.ok,
            "totals": {
                "passed": self.passed,
                "failed": self.failed,
                "aborted": self.aborted,
            },
            "topics": {
                topic: tally.to_dict()
                for topic, tally in sorted(self.topics.items())
            },
            "failures": [f.to_dict() for f in self.failures],
        }
