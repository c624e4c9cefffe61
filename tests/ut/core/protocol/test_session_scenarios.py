import asyncio
import dataclasses

import pytest

from symbiote.core.catalog.operations import Operation
from symbiote.core.models.message import (
    BadResult,
    BadStartSubset,
    BadTopics,
    FirstGenerating,
    FirstOperating,
    Generated,
    ImFinished,
    NoParseOperated,
    NoParseOperation,
    NoParseValue,
    Operated,
    SecondGenerating,
    SecondOperating,
    Start,
    Topics,
    YourTurn,
)
from symbiote.core.models.report import AbortReason, FailureKind, Role, SessionOutcome, TopicStatus
from symbiote.core.models.topic import AvailableTopics
from symbiote.core.protocol.session import FirstSession, SecondSession
from symbiote.core.transport.memory import channel_pair
from tests.fake.fake_peer import ScriptedPeer


def second_with_peer(registry, codec, config):
    left, right = channel_pair()
    return SecondSession(right, registry, codec, config), ScriptedPeer(left, codec, Role.first)


def first_with_peer(registry, codec, config):
    left, right = channel_pair()
    return FirstSession(left, registry, codec, config), ScriptedPeer(right, codec, Role.second)


@pytest.mark.ut
@pytest.mark.asyncio
async def test_negotiated_start_carries_both_topics(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(AvailableTopics({"Int32": 4, "String8": 1})))

    assert await peer.receive() == Start(frozenset({"Int32", "String8"}))

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.ut
@pytest.mark.asyncio
async def test_generated_int32_is_operated_to_true(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())
    entry = small_registry.lookup("Int32")

    await peer.send(Topics(small_registry.available()))
    await peer.receive()

    value = binary_codec.encode_value(entry.codec, 42)
    operation = binary_codec.encode_operation(entry.operations, Operation("eq", 42))
    await peer.send(FirstGenerating("Int32", Generated(value, operation)))

    assert await peer.receive() == SecondOperating(Operated(b"\x01"))

    await peer.send(FirstGenerating("Int32", ImFinished()))
    await peer.send(FirstGenerating("String8", ImFinished()))
    report = await asyncio.wait_for(task, timeout=1)

    assert report.ok
    assert report.topics["Int32"].passed == 1


@pytest.mark.ut
@pytest.mark.asyncio
async def test_truncated_value_gets_no_parse_value(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(small_registry.available()))
    await peer.receive()

    # Int32 needs 4 bytes, only 2 are sent
    await peer.send(FirstGenerating("Int32", Generated(b"\x00\x2a", b"\x04")))

    assert await peer.receive() == SecondOperating(NoParseValue(b"\x00\x2a"))

    await peer.send(FirstGenerating("Int32", ImFinished()))
    await peer.send(FirstGenerating("String8", ImFinished()))
    report = await asyncio.wait_for(task, timeout=1)

    assert report.outcome is SessionOutcome.completed
    assert report.topics["Int32"].failed == 1
    assert report.failures[0].kind is FailureKind.no_parse_value
    assert report.failures[0].generator is Role.first
    assert not report.ok


@pytest.mark.ut
@pytest.mark.asyncio
async def test_float_beyond_double_range_gets_no_parse_value(registry, json_codec, session_config):
    floats = registry.restrict(["Float64"]).freeze()
    session, peer = second_with_peer(floats, json_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(floats.available()))
    await peer.receive()

    await peer.send(FirstGenerating("Float64", Generated(10**400, "identity")))

    assert await peer.receive() == SecondOperating(NoParseValue(10**400))

    await peer.send(FirstGenerating("Float64", ImFinished()))
    report = await asyncio.wait_for(task, timeout=1)

    assert report.outcome is SessionOutcome.completed
    assert report.topics["Float64"].failed == 1
    assert report.failures[0].kind is FailureKind.no_parse_value


@pytest.mark.ut
@pytest.mark.asyncio
async def test_untagged_operation_gets_no_parse_operation(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(small_registry.available()))
    await peer.receive()

    # Argument alone, without the capability tag byte
    untagged = b"\x00\x00\x00\x2a"
    await peer.send(FirstGenerating("Int32", Generated(b"\x00\x00\x00\x2a", untagged)))

    assert await peer.receive() == SecondOperating(NoParseOperation(untagged))

    await peer.send(FirstGenerating("Int32", ImFinished()))
    await peer.send(FirstGenerating("String8", ImFinished()))
    report = await asyncio.wait_for(task, timeout=1)

    assert report.outcome is SessionOutcome.completed
    assert report.failures[0].kind is FailureKind.no_parse_operation



@pytest.mark.ut
@pytest.mark.asyncio
async def test_im_finished_mid_topic_moves_to_next_topic(small_registry, json_codec, session_config):
    session, peer = second_with_peer(small_registry, json_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(small_registry.available()))
    await peer.receive()

    # Second never generated for Int32, yet the topic ends here
    await peer.send(FirstGenerating("Int32", ImFinished()))

    # The next topic starts right away
    await peer.send(FirstGenerating("String8", Generated("abc", "identity")))
    assert await peer.receive() == SecondOperating(Operated("abc"))
    await peer.send(FirstGenerating("String8", ImFinished()))

    report = await asyncio.wait_for(task, timeout=1)

    assert report.topics["Int32"].status is TopicStatus.finished
    assert report.topics["Int32"].total == 0
    assert report.topics["String8"].passed == 1
    assert report.ok


@pytest.mark.ut
@pytest.mark.asyncio
async def test_bad_result_is_reported_to_the_operator(identity_registry, binary_codec, session_config):
    config = dataclasses.replace(session_config, trials=1)
    session, peer = first_with_peer(identity_registry, binary_codec, config)
    task = asyncio.create_task(session.run())

    assert isinstance(await peer.receive(), Topics)
    await peer.send(Start(frozenset({"Int32"})))

    message = await peer.receive()
    assert isinstance(message.generating, Generated)
    value = int.from_bytes(message.generating.value, "big", signed=True)
    wrong = ((value + 1 + 2**31) % 2**32) - 2**31
    wrong_payload = wrong.to_bytes(4, "big", signed=True)
    await peer.send(SecondOperating(Operated(wrong_payload)))

    assert await peer.receive() == FirstGenerating("Int32", BadResult(wrong_payload))
    assert await peer.receive() == FirstGenerating("Int32", YourTurn())
    await peer.send(SecondGenerating(ImFinished()))

    report = await asyncio.wait_for(task, timeout=1)

    assert report.outcome is SessionOutcome.completed
    assert report.topics["Int32"].failed == 1
    assert report.failures[0].kind is FailureKind.bad_result
    assert report.failures[0].generator is Role.first


@pytest.mark.ut
@pytest.mark.asyncio
async def test_unparsable_result_gets_no_parse_operated(identity_registry, binary_codec, session_config):
    config = dataclasses.replace(session_config, trials=1)
    session, peer = first_with_peer(identity_registry, binary_codec, config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(Start(frozenset({"Int32"})))
    await peer.receive()
    await peer.send(SecondOperating(Operated(b"\x01")))

    assert await peer.receive() == FirstGenerating("Int32", NoParseOperated(b"\x01"))
    assert await peer.receive() == FirstGenerating("Int32", YourTurn())
    await peer.send(SecondGenerating(ImFinished()))

    report = await asyncio.wait_for(task, timeout=1)
    assert report.failures[0].kind is FailureKind.no_parse_operated


@pytest.mark.ut
@pytest.mark.asyncio
async def test_operator_learns_its_result_was_rejected(identity_registry, binary_codec, session_config):
    session, peer = second_with_peer(identity_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(identity_registry.available()))
    await peer.receive()
    await peer.send(FirstGenerating("Int32", Generated(b"\x00\x00\x00\x07", b"\x00")))
    assert await peer.receive() == SecondOperating(Operated(b"\x00\x00\x00\x07"))

    await peer.send(FirstGenerating("Int32", BadResult(b"\x00\x00\x00\x07")))
    await peer.send(FirstGenerating("Int32", ImFinished()))
    report = await asyncio.wait_for(task, timeout=1)

    assert report.topics["Int32"].failed == 1
    assert report.topics["Int32"].passed == 0
    assert report.failures[0].kind is FailureKind.bad_result
    assert report.failures[0].generator is Role.first


@pytest.mark.ut
@pytest.mark.asyncio
async def test_unexpected_bad_result_aborts(identity_registry, binary_codec, session_config):
    session, peer = second_with_peer(identity_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(identity_registry.available()))
    await peer.receive()
    await peer.send(FirstGenerating("Int32", BadResult(b"")))

    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.unexpected_message


@pytest.mark.ut
@pytest.mark.asyncio
async def test_no_common_topic_sends_bad_topics(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(AvailableTopics({"Float64": 8})))

    assert await peer.receive() == BadTopics(AvailableTopics({"Float64": 8}))
    report = await asyncio.wait_for(task, timeout=1)
    assert report.outcome is SessionOutcome.aborted
    assert report.reason is AbortReason.bad_topics


@pytest.mark.ut
@pytest.mark.asyncio
async def test_size_tolerance_sends_bad_topics(small_registry, binary_codec, session_config):
    config = dataclasses.replace(session_config, size_tolerance=0)
    session, peer = second_with_peer(small_registry, binary_codec, config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(AvailableTopics({"Int32": 8, "String8": 1})))

    assert await peer.receive() == BadTopics(AvailableTopics({"Int32": 4}))
    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.bad_topics


@pytest.mark.ut
@pytest.mark.asyncio
async def test_first_aborts_on_bad_topics(small_registry, binary_codec, session_config):
    session, peer = first_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(BadTopics(AvailableTopics({"Int32": 4})))

    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.bad_topics
    assert not report.ok


@pytest.mark.ut
@pytest.mark.asyncio
async def test_start_outside_own_topics_sends_bad_start_subset(small_registry, binary_codec, session_config):
    session, peer = first_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(Start(frozenset({"Int32", "Float64"})))

    assert await peer.receive() == BadStartSubset()
    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.bad_start_subset


@pytest.mark.ut
@pytest.mark.asyncio
async def test_empty_start_is_rejected(small_registry, json_codec, session_config):
    session, peer = first_with_peer(small_registry, json_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(Start(frozenset()))

    assert await peer.receive() == BadStartSubset()
    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.bad_start_subset


@pytest.mark.ut
@pytest.mark.asyncio
async def test_second_aborts_on_bad_start_subset(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(small_registry.available()))
    await peer.receive()
    await peer.send(BadStartSubset())

    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.bad_start_subset


@pytest.mark.ut
@pytest.mark.asyncio
async def test_silent_peer_times_out(small_registry, binary_codec, session_config):
    config = dataclasses.replace(session_config, reply_timeout=0.05, receive_retries=1)
    session, peer = first_with_peer(small_registry, binary_codec, config)

    report = await asyncio.wait_for(session.run(), timeout=1)

    assert report.outcome is SessionOutcome.aborted
    assert report.reason is AbortReason.timeout


@pytest.mark.ut
@pytest.mark.asyncio
async def test_timeout_during_trial_fails_it(identity_registry, binary_codec, session_config):
    config = dataclasses.replace(session_config, reply_timeout=0.05, receive_retries=0)
    session, peer = first_with_peer(identity_registry, binary_codec, config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(Start(frozenset({"Int32"})))
    await peer.receive()

    report = await asyncio.wait_for(task, timeout=1)

    assert report.reason is AbortReason.timeout
    assert report.topics["Int32"].failed == 1
    assert report.topics["Int32"].status is TopicStatus.aborted
    assert report.failures[0].kind is FailureKind.timeout


@pytest.mark.ut
@pytest.mark.asyncio
async def test_closed_channel_aborts_pending_trial(identity_registry, binary_codec, session_config):
    session, peer = first_with_peer(identity_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(Start(frozenset({"Int32"})))
    await peer.receive()
    await peer.channel.close()

    report = await asyncio.wait_for(task, timeout=1)

    assert report.reason is AbortReason.channel_closed
    assert report.topics["Int32"].aborted == 1
    assert report.topics["Int32"].passed == 0


@pytest.mark.ut
@pytest.mark.asyncio
async def test_malformed_frame_aborts(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send_raw(b"\xff")

    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.malformed_message


@pytest.mark.ut
@pytest.mark.asyncio
async def test_wrong_topic_aborts(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(small_registry.available()))
    await peer.receive()
    await peer.send(FirstGenerating("String8", YourTurn()))

    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.topic_mismatch


@pytest.mark.ut
@pytest.mark.asyncio
async def test_out_of_order_message_aborts(small_registry, binary_codec, session_config):
    session, peer = second_with_peer(small_registry, binary_codec, session_config)
    task = asyncio.create_task(session.run())

    await peer.send(Topics(small_registry.available()))
    await peer.receive()
    await peer.send(FirstOperating("Int32", Operated(b"\x01")))

    report = await asyncio.wait_for(task, timeout=1)
    assert report.reason is AbortReason.unexpected_message


@pytest.mark.ut
@pytest.mark.asyncio
async def test_failure_threshold_gives_up_on_topic(identity_registry, binary_codec, session_config):
    config = dataclasses.replace(session_config, trials=5, max_topic_failures=2)
    session, peer = first_with_peer(identity_registry, binary_codec, config)
    task = asyncio.create_task(session.run())

    await peer.receive()
    await peer.send(Start(frozenset({"Int32"})))

    for _ in range(2):
        message = await peer.receive()
        assert isinstance(message.generating, Generated)
        await peer.send(SecondOperating(NoParseValue(message.generating.value)))

    # Gave up after two failures: no third trial
    assert await peer.receive() == FirstGenerating("Int32", YourTurn())
    await peer.send(SecondGenerating(ImFinished()))

    report = await asyncio.wait_for(task, timeout=1)

    assert report.outcome is SessionOutcome.completed
    assert report.topics["Int32"].failed == 2
    assert report.topics["Int32"].status is TopicStatus.aborted
    assert not report.ok
