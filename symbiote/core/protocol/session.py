import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from symbiote.core.catalog.operations import Operation
from symbiote.core.models.config import SessionConfig, SwapPolicy
from symbiote.core.models.message import (
    BadResult,
    BadStartSubset,
    BadTopics,
    First,
    FirstGenerating,
    FirstOperating,
    Generated,
    Generating,
    ImFinished,
    NoParseOperated,
    NoParseOperation,
    NoParseValue,
    Operated,
    Operating,
    Second,
    SecondGenerating,
    SecondOperating,
    Start,
    Topics,
    YourTurn,
    describe,
)
from symbiote.core.models.report import (
    AbortReason,
    FailureKind,
    Role,
    SessionReport,
    TopicStatus,
    TopicTally,
    TrialFailure,
)
from symbiote.core.models.topic import Topic
from symbiote.core.ports.channel import Channel, ChannelClosed, ChannelTimeout
from symbiote.core.ports.errors import ParseError, preview
from symbiote.core.protocol.negotiation import is_valid_start, negotiate, schedule
from symbiote.core.registry import CodecRegistry, Registration
from symbiote.core.wire.messages import MessageCodec


class TopicPhase(StrEnum):
    awaiting_generate = "awaiting_generate"
    awaiting_operate = "awaiting_operate"
    awaiting_verify = "awaiting_verify"
    passed = "passed"
    failed = "failed"
    finished = "finished"
    aborted = "aborted"


class ProtocolAbort(Exception):
    """Fatal condition that ends the session with a structured reason."""

    def __init__(self, reason: AbortReason, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else str(reason))
        self.reason = reason
        self.detail = detail


@dataclass
class TopicRun:
    """Mutable state of the topic currently under test."""
    registration: Registration
    tally: TopicTally
    starter: bool
    """Whether this party generates first for the topic."""

    total: int
    remaining: int
    phase: TopicPhase = TopicPhase.awaiting_generate
    generated: int = 0
    failures: int = 0
    peer_trials: int = 0
    """Trials the peer generated since we last handed it the turn."""

    in_flight: bool = False
    """We sent Generated and wait for the Operating reply."""

    pending: bool = False
    """We sent Operated and wait to learn whether it was accepted."""

    gave_up: bool = False
    done: bool = False

    @property
    def topic(self) -> Topic:
        return self.registration.topic


class Session(ABC):
    """
    Walks the protocol for one party over one channel.

    The walk is strictly sequential: negotiate the topics, then for each
    negotiated topic (in sorted order) alternate between generating trials
    and operating on the peer's trials until one party signals ImFinished.
    The first party always starts generating.

    Recoverable problems (undecodable payloads, wrong results) are reported
    to the peer as protocol messages and counted as failed trials. Only
    negotiation failures, protocol violations, timeouts and channel loss end
    the session early; the report then carries the abort reason.
    """

    role: Role
    peer: Role

    def __init__(
        self,
        channel: Channel,
        registry: CodecRegistry,
        codec: MessageCodec,
        config: SessionConfig,
        rng: random.Random | None = None,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._codec = codec
        self._config = config
        self._rng = rng or random.Random(config.seed)
        self._run: TopicRun | None = None
        self.report = SessionReport(role=self.role)
        self._logger = logging.getLogger("core.protocol.session")

    async def run(self) -> SessionReport:
        try:
            topics = await self.negotiate()
            self._logger.info(f"[{self.role}] Negotiated {len(topics)} topic(s)")
            for topic in topics:
                self.report.tally(topic)
            for topic in topics:
                await self.run_topic(topic)
        except ProtocolAbort as ex:
            self._abort(ex.reason, ex.detail)
        except ChannelClosed as ex:
            self._abort(AbortReason.channel_closed, str(ex))
        return self.report

    @abstractmethod
    async def negotiate(self) -> list[Topic]:
        ...

    @abstractmethod
    async def send_generating(self, topic: Topic, generating: Generating) -> None:
        ...

    @abstractmethod
    async def send_operating(self, topic: Topic, operating: Operating) -> None:
        ...

    @abstractmethod
    async def receive_exchange(self, topic: Topic) -> Generating | Operating:
        """Receive the next per-topic message, unwrapped from its envelope."""

    # Topic loop

    async def run_topic(self, topic: Topic) -> None:
        registration = self._registry.lookup(topic)
        if registration is None:
            raise ProtocolAbort(AbortReason.bad_start_subset, f"Topic {topic!r} is not registered")

        starter = self.role is Role.first
        budget = self._trial_budget(registration, starter)
        run = TopicRun(
            registration=registration,
            tally=self.report.tally(topic),
            starter=starter,
            total=budget,
            remaining=budget,
        )
        self._run = run
        self._logger.info(f"[{self.role}] Topic {topic}: generating {budget} trial(s)")

        if starter:
            await self.take_turn(run)

        while not run.done:
            message = await self.receive_exchange(topic)
            await self.on_generating(run, message)

        run.phase = TopicPhase.aborted if run.gave_up else TopicPhase.finished
        run.tally.status = TopicStatus.aborted if run.gave_up else TopicStatus.finished
        self._run = None
        self._logger.info(
            f"[{self.role}] Topic {topic} {run.tally.status}: "
            f"{run.tally.passed} passed, {run.tally.failed} failed"
        )

    async def on_generating(self, run: TopicRun, message: Generating | Operating) -> None:
        match message:
            case Generated(value=value, operation=operation):
                self._settle(run)
                run.peer_trials += 1
                await self.operate(run, value, operation)
            case BadResult(result=result):
                self._settle(run, FailureKind.bad_result, f"peer rejected result {preview(result)}")
            case NoParseOperated(result=result):
                self._settle(run, FailureKind.no_parse_operated, f"peer could not parse {preview(result)}")
            case YourTurn():
                self._settle(run)
                await self.take_turn(run, peer_idle=run.peer_trials == 0)
            case ImFinished():
                self._settle(run)
                run.done = True
                self._logger.debug(f"[{self.role}] Peer finished topic {run.topic}")
            case _:
                raise ProtocolAbort(
                    AbortReason.unexpected_message,
                    f"Expected a Generating message, got {describe(message)}",
                )

    async def take_turn(self, run: TopicRun, peer_idle: bool = False) -> None:
        """
        Generate this turn's trials, then hand the turn back.

        A party ends the topic with ImFinished once it has no trials left and
        the peer handed the turn back without generating anything, i.e. both
        parties are exhausted. Otherwise the turn goes back with YourTurn.
        """
        run.peer_trials = 0
        if self._config.swap is SwapPolicy.trial and not peer_idle:
            batch = min(run.remaining, 1)
        else:
            batch = run.remaining

        for _ in range(batch):
            await self.trial(run)
            if run.gave_up:
                break

        if run.remaining == 0 and peer_idle:
            await self.send_generating(run.topic, ImFinished())
            run.done = True
        else:
            await self.send_generating(run.topic, YourTurn())

    # Generating party

    async def trial(self, run: TopicRun) -> None:
        registration = run.registration
        size = self._size_for(run)
        value = registration.codec.generate(self._rng, size)
        operation = registration.operations.generate(self._rng, size, value)

        run.remaining -= 1
        run.generated += 1
        run.phase = TopicPhase.awaiting_operate
        run.in_flight = True
        await self.send_generating(run.topic, Generated(
            self._codec.encode_value(registration.codec, value),
            self._codec.encode_operation(registration.operations, operation),
        ))

        reply = await self.receive_exchange(run.topic)
        run.phase = TopicPhase.awaiting_verify
        match reply:
            case Operated(result=payload):
                await self.verify(run, value, operation, payload)
            case NoParseValue(value=raw):
                run.in_flight = False
                self._fail(run, FailureKind.no_parse_value, self.role,
                           f"peer could not parse value {preview(raw)}")
            case NoParseOperation(operation=raw):
                run.in_flight = False
                self._fail(run, FailureKind.no_parse_operation, self.role,
                           f"peer could not parse operation {preview(raw)}")
            case _:
                raise ProtocolAbort(
                    AbortReason.unexpected_message,
                    f"Expected an Operating reply, got {describe(reply)}",
                )

    async def verify(self, run: TopicRun, value: Any, operation: Operation, payload: Any) -> None:
        registration = run.registration
        capability = registration.operations.capability(operation.name)
        output = capability.result_codec(registration.codec)
        expected = capability.apply(value, operation.argument)

        try:
            result = self._codec.decode_value(output, payload)
        except ParseError as ex:
            run.in_flight = False
            self._fail(run, FailureKind.no_parse_operated, self.role, str(ex))
            await self.send_generating(run.topic, NoParseOperated(payload))
            return

        if not output.equals(expected, result):
            run.in_flight = False
            self._fail(
                run, FailureKind.bad_result, self.role,
                f"{operation.name}({preview(value)}): "
                f"expected {preview(expected)}, got {preview(result)}",
            )
            await self.send_generating(run.topic, BadResult(payload))
            return

        run.in_flight = False
        run.phase = TopicPhase.passed
        run.tally.passed += 1

    # Operating party

    async def operate(self, run: TopicRun, value_payload: Any, operation_payload: Any) -> None:
        registration = run.registration
        run.phase = TopicPhase.awaiting_operate

        try:
            value = self._codec.decode_value(registration.codec, value_payload)
        except ParseError as ex:
            self._fail(run, FailureKind.no_parse_value, self.peer, str(ex))
            await self.send_operating(run.topic, NoParseValue(value_payload))
            return

        try:
            operation = self._codec.decode_operation(registration.operations, operation_payload)
        except ParseError as ex:
            self._fail(run, FailureKind.no_parse_operation, self.peer, str(ex))
            await self.send_operating(run.topic, NoParseOperation(operation_payload))
            return

        capability, result = registration.operations.perform(value, operation)
        payload = self._codec.encode_value(capability.result_codec(registration.codec), result)
        run.pending = True
        await self.send_operating(run.topic, Operated(payload))

    # Bookkeeping

    def _settle(self, run: TopicRun, kind: FailureKind | None = None, detail: str = "") -> None:
        """Resolve the trial we last operated on, now that the peer moved on."""
        if not run.pending:
            if kind is not None:
                raise ProtocolAbort(
                    AbortReason.unexpected_message,
                    f"Received {kind} while no result was pending",
                )
            return

        run.pending = False
        if kind is None:
            run.phase = TopicPhase.passed
            run.tally.passed += 1
        else:
            self._fail(run, kind, self.peer, detail)

    def _fail(self, run: TopicRun, kind: FailureKind, generator: Role, detail: str) -> None:
        run.phase = TopicPhase.failed
        run.tally.failed += 1
        run.failures += 1
        self.report.failures.append(TrialFailure(run.topic, kind, generator, detail))
        self._logger.warning(f"[{self.role}] Trial failed on {run.topic} ({kind}): {detail}")

        limit = self._config.max_topic_failures
        if limit is not None and run.failures >= limit and not run.gave_up:
            run.gave_up = True
            run.remaining = 0
            self._logger.error(
                f"[{self.role}] Giving up on topic {run.topic} after {run.failures} failure(s)"
            )

    def _abort(self, reason: AbortReason, detail: str) -> None:
        run = self._run
        if run is not None:
            if run.in_flight:
                if reason is AbortReason.timeout:
                    self._fail(run, FailureKind.timeout, self.role, detail)
                else:
                    run.tally.aborted += 1
            if run.pending:
                run.tally.aborted += 1
            run.in_flight = run.pending = False
            run.phase = TopicPhase.aborted
            run.tally.status = TopicStatus.aborted
            self._run = None

        self.report.abort(reason, detail)
        self._logger.error(f"[{self.role}] Session aborted ({reason}): {detail}")

    def _trial_budget(self, registration: Registration, starter: bool) -> int:
        if self._config.swap is SwapPolicy.never and not starter:
            return 0
        trials = max(self._config.trials, 0)
        if registration.codec.distinct is not None:
            trials = min(trials, registration.codec.distinct)
        return trials

    def _size_for(self, run: TopicRun) -> int:
        if run.total <= 1:
            return self._config.max_size
        return run.generated * self._config.max_size // (run.total - 1)

    async def receive_frame(self) -> bytes:
        timeout = self._config.reply_timeout
        attempts = self._config.receive_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(self._channel.receive(), timeout=timeout)
            except (asyncio.TimeoutError, ChannelTimeout):
                self._logger.warning(
                    f"[{self.role}] No message after {timeout:.1f}s ({attempt}/{attempts})"
                )
        raise ProtocolAbort(AbortReason.timeout, f"No message within {attempts * timeout:.1f}s")

    def decode_frame(self, frame: bytes) -> Any:
        try:
            message = self.decode(frame)
        except ParseError as ex:
            raise ProtocolAbort(AbortReason.malformed_message, str(ex)) from ex
        self._logger.debug(f"[{self.role}] Received {describe(message)}")
        return message

    @abstractmethod
    def decode(self, frame: bytes) -> Any:
        ...


class FirstSession(Session):
    """The party that advertises its topics and starts every topic."""

    role = Role.first
    peer = Role.second

    async def negotiate(self) -> list[Topic]:
        ours = self._registry.available()
        await self.send(Topics(ours))

        message = self.decode_frame(await self.receive_frame())
        match message:
            case BadTopics(topics=offending):
                raise ProtocolAbort(
                    AbortReason.bad_topics,
                    f"Peer rejected topics: {', '.join(offending) or '<none>'}",
                )
            case Start(topics=topics):
                if not is_valid_start(topics, ours):
                    await self.send(BadStartSubset())
                    unknown = sorted(set(topics) - set(ours))
                    raise ProtocolAbort(
                        AbortReason.bad_start_subset,
                        f"Start names unsupported topics: {', '.join(unknown) or '<empty>'}",
                    )
                return schedule(topics)
        raise ProtocolAbort(
            AbortReason.unexpected_message,
            f"Expected BadTopics or Start, got {describe(message)}",
        )

    async def send(self, message: First) -> None:
        self._logger.debug(f"[{self.role}] Sending {describe(message)}")
        await self._channel.send(self._codec.encode_first(message))

    async def send_generating(self, topic: Topic, generating: Generating) -> None:
        await self.send(FirstGenerating(topic, generating))

    async def send_operating(self, topic: Topic, operating: Operating) -> None:
        await self.send(FirstOperating(topic, operating))

    async def receive_exchange(self, topic: Topic) -> Generating | Operating:
        message = self.decode_frame(await self.receive_frame())
        match message:
            case SecondGenerating(generating=generating):
                return generating
            case SecondOperating(operating=operating):
                return operating
        raise ProtocolAbort(
            AbortReason.unexpected_message,
            f"Expected a message about {topic}, got {describe(message)}",
        )

    def decode(self, frame: bytes) -> Second:
        return self._codec.decode_second(frame)


class SecondSession(Session):
    """The party that accepts the first party's topics and follows its lead."""

    role = Role.second
    peer = Role.first

    async def negotiate(self) -> list[Topic]:
        ours = self._registry.available()

        message = self.decode_frame(await self.receive_frame())
        if not isinstance(message, Topics):
            raise ProtocolAbort(
                AbortReason.unexpected_message,
                f"Expected Topics, got {describe(message)}",
            )

        negotiation = negotiate(message.topics, ours, self._config.size_tolerance)
        if not negotiation.accepted:
            offending = negotiation.offending
            await self.send(BadTopics(offending))
            raise ProtocolAbort(
                AbortReason.bad_topics,
                f"Rejected topics: {', '.join(offending) or '<none>'}",
            )

        await self.send(Start(negotiation.topics))
        return schedule(negotiation.topics)

    async def send(self, message: Second) -> None:
        self._logger.debug(f"[{self.role}] Sending {describe(message)}")
        await self._channel.send(self._codec.encode_second(message))

    async def send_generating(self, topic: Topic, generating: Generating) -> None:
        await self.send(SecondGenerating(generating))

    async def send_operating(self, topic: Topic, operating: Operating) -> None:
        await self.send(SecondOperating(operating))

    async def receive_exchange(self, topic: Topic) -> Generating | Operating:
        message = self.decode_frame(await self.receive_frame())
        match message:
            case FirstGenerating(topic=received, generating=generating):
                self._check_topic(topic, received)
                return generating
            case FirstOperating(topic=received, operating=operating):
                self._check_topic(topic, received)
                return operating
            case BadStartSubset():
                raise ProtocolAbort(AbortReason.bad_start_subset, "Peer rejected the Start subset")
        raise ProtocolAbort(
            AbortReason.unexpected_message,
            f"Expected a message about {topic}, got {describe(message)}",
        )

    @staticmethod
    def _check_topic(expected: Topic, received: Topic) -> None:
        if received != expected:
            raise ProtocolAbort(
                AbortReason.topic_mismatch,
                f"Expected topic {expected!r}, got {received!r}",
            )

    def decode(self, frame: bytes) -> First:
        return self._codec.decode_first(frame)
