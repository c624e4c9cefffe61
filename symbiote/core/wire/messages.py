from abc import ABC, abstractmethod
from typing import Any

from symbiote.core.catalog.operations import Operation, OperationCodec
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
)
from symbiote.core.models.topic import AvailableTopics, Topic, validate_topic
from symbiote.core.ports.codec import Codec
from symbiote.core.ports.errors import ParseError, preview
from symbiote.core.ports.serializer import Serializer
from symbiote.core.wire.binary import BinaryReader, VectorWidth, pack_vector


class MessageCodec(ABC):
    """
    Encodes protocol messages into frames, for one wire encoding.

    The same codec also maps typed values to and from the payload
    representation carried inside Generating/Operating messages: JSON trees
    for JsonMessageCodec, raw bytes for BinaryMessageCodec.

    Every decode method raises ParseError on malformed input and nothing
    else.
    """

    name: str = ""

    @abstractmethod
    def encode_first(self, message: First) -> bytes:
        ...

    @abstractmethod
    def decode_first(self, frame: bytes) -> First:
        ...

    @abstractmethod
    def encode_second(self, message: Second) -> bytes:
        ...

    @abstractmethod
    def decode_second(self, frame: bytes) -> Second:
        ...

    @abstractmethod
    def encode_value(self, codec: Codec, value: Any) -> Any:
        ...

    @abstractmethod
    def decode_value(self, codec: Codec, payload: Any) -> Any:
        ...

    @abstractmethod
    def encode_operation(self, operations: OperationCodec, operation: Operation) -> Any:
        ...

    @abstractmethod
    def decode_operation(self, operations: OperationCodec, payload: Any) -> Operation:
        ...


# Binary tags, in declaration order of each variant.
GENERATED, BAD_RESULT, YOUR_TURN, IM_FINISHED, NO_PARSE_OPERATED = range(5)
OPERATED, NO_PARSE_VALUE, NO_PARSE_OPERATION = range(3)
TOPICS, BAD_START_SUBSET, FIRST_GENERATING, FIRST_OPERATING = range(4)
BAD_TOPICS, START, SECOND_OPERATING, SECOND_GENERATING = range(4)

WIDTH = VectorWidth.VECTOR32


class BinaryMessageCodec(MessageCodec):
    """
    Tag byte per variant followed by its fields. Topics and payloads are
    Vector32 (u32 big-endian length prefix), sizes are big-endian int32.
    Collections of topics are sorted, so encoding is deterministic.
    """

    name = "binary"

    # Payloads

    def encode_value(self, codec: Codec, value: Any) -> bytes:
        return codec.encode_binary(value)

    def decode_value(self, codec: Codec, payload: Any) -> Any:
        if not isinstance(payload, (bytes, bytearray)):
            raise ParseError(f"Expected binary payload, got {type(payload).__name__}", raw=payload)
        return codec.decode_binary_exact(bytes(payload))

    def encode_operation(self, operations: OperationCodec, operation: Operation) -> bytes:
        return operations.encode_binary(operation)

    def decode_operation(self, operations: OperationCodec, payload: Any) -> Operation:
        if not isinstance(payload, (bytes, bytearray)):
            raise ParseError(f"Expected binary payload, got {type(payload).__name__}", raw=payload)
        return operations.decode_binary(bytes(payload))

    # Envelopes

    def encode_first(self, message: First) -> bytes:
        match message:
            case Topics(topics=topics):
                return bytes([TOPICS]) + self._pack_available(topics)
            case BadStartSubset():
                return bytes([BAD_START_SUBSET])
            case FirstGenerating(topic=topic, generating=generating):
                return bytes([FIRST_GENERATING]) + self._pack_topic(topic) + self._pack_generating(generating)
            case FirstOperating(topic=topic, operating=operating):
                return bytes([FIRST_OPERATING]) + self._pack_topic(topic) + self._pack_operating(operating)
        raise TypeError(f"Not a First message: {message!r}")

    def decode_first(self, frame: bytes) -> First:
        reader = BinaryReader(frame)
        tag = reader.byte()
        if tag == TOPICS:
            message = Topics(self._read_available(reader))
        elif tag == BAD_START_SUBSET:
            message = BadStartSubset()
        elif tag == FIRST_GENERATING:
            topic = self._read_topic(reader)
            message = FirstGenerating(topic, self._read_generating(reader))
        elif tag == FIRST_OPERATING:
            topic = self._read_topic(reader)
            message = FirstOperating(topic, self._read_operating(reader))
        else:
            raise ParseError(f"Unknown First tag {tag}", raw=frame)
        reader.expect_end()
        return message

    def encode_second(self, message: Second) -> bytes:
        match message:
            case BadTopics(topics=topics):
                return bytes([BAD_TOPICS]) + self._pack_available(topics)
            case Start(topics=topics):
                body = len(topics).to_bytes(WIDTH, "big")
                body += b"".join(self._pack_topic(t) for t in sorted(topics))
                return bytes([START]) + body
            case SecondOperating(operating=operating):
                return bytes([SECOND_OPERATING]) + self._pack_operating(operating)
            case SecondGenerating(generating=generating):
                return bytes([SECOND_GENERATING]) + self._pack_generating(generating)
        raise TypeError(f"Not a Second message: {message!r}")

    def decode_second(self, frame: bytes) -> Second:
        reader = BinaryReader(frame)
        tag = reader.byte()
        if tag == BAD_TOPICS:
            message = BadTopics(self._read_available(reader))
        elif tag == START:
            count = reader.length(WIDTH)
            message = Start(frozenset(self._read_topic(reader) for _ in range(count)))
        elif tag == SECOND_OPERATING:
            message = SecondOperating(self._read_operating(reader))
        elif tag == SECOND_GENERATING:
            message = SecondGenerating(self._read_generating(reader))
        else:
            raise ParseError(f"Unknown Second tag {tag}", raw=frame)
        reader.expect_end()
        return message

    # Fields

    @staticmethod
    def _pack_topic(topic: Topic) -> bytes:
        return pack_vector(topic.encode("utf-8"), WIDTH)

    @staticmethod
    def _read_topic(reader: BinaryReader) -> Topic:
        topic = reader.text(WIDTH)
        try:
            return validate_topic(topic)
        except ValueError as ex:
            raise ParseError(str(ex), raw=topic) from ex

    def _pack_available(self, topics: AvailableTopics) -> bytes:
        parts = [len(topics).to_bytes(WIDTH, "big")]
        for topic, size in sorted(topics.items()):
            parts.append(self._pack_topic(topic))
            parts.append(size.to_bytes(4, "big", signed=True))
        return b"".join(parts)

    def _read_available(self, reader: BinaryReader) -> AvailableTopics:
        count = reader.length(WIDTH)
        items: dict[Topic, int] = {}
        for _ in range(count):
            topic = self._read_topic(reader)
            (size,) = reader.unpack(">i")
            if topic in items:
                raise ParseError(f"Duplicate topic {topic!r}", raw=topic)
            items[topic] = size
        try:
            return AvailableTopics(items)
        except ValueError as ex:
            raise ParseError(str(ex), raw=items) from ex

    @staticmethod
    def _pack_generating(generating: Generating) -> bytes:
        match generating:
            case Generated(value=value, operation=operation):
                return bytes([GENERATED]) + pack_vector(value, WIDTH) + pack_vector(operation, WIDTH)
            case BadResult(result=result):
                return bytes([BAD_RESULT]) + pack_vector(result, WIDTH)
            case YourTurn():
                return bytes([YOUR_TURN])
            case ImFinished():
                return bytes([IM_FINISHED])
            case NoParseOperated(result=result):
                return bytes([NO_PARSE_OPERATED]) + pack_vector(result, WIDTH)
        raise TypeError(f"Not a Generating message: {generating!r}")

    @staticmethod
    def _read_generating(reader: BinaryReader) -> Generating:
        tag = reader.byte()
        if tag == GENERATED:
            value = reader.vector(WIDTH)
            return Generated(value, reader.vector(WIDTH))
        if tag == BAD_RESULT:
            return BadResult(reader.vector(WIDTH))
        if tag == YOUR_TURN:
            return YourTurn()
        if tag == IM_FINISHED:
            return ImFinished()
        if tag == NO_PARSE_OPERATED:
            return NoParseOperated(reader.vector(WIDTH))
        raise ParseError(f"Unknown Generating tag {tag}", raw=tag)

    @staticmethod
    def _pack_operating(operating: Operating) -> bytes:
        match operating:
            case Operated(result=result):
                return bytes([OPERATED]) + pack_vector(result, WIDTH)
            case NoParseValue(value=value):
                return bytes([NO_PARSE_VALUE]) + pack_vector(value, WIDTH)
            case NoParseOperation(operation=operation):
                return bytes([NO_PARSE_OPERATION]) + pack_vector(operation, WIDTH)
        raise TypeError(f"Not an Operating message: {operating!r}")

    @staticmethod
    def _read_operating(reader: BinaryReader) -> Operating:
        tag = reader.byte()
        if tag == OPERATED:
            return Operated(reader.vector(WIDTH))
        if tag == NO_PARSE_VALUE:
            return NoParseValue(reader.vector(WIDTH))
        if tag == NO_PARSE_OPERATION:
            return NoParseOperation(reader.vector(WIDTH))
        raise ParseError(f"Unknown Operating tag {tag}", raw=tag)


class JsonMessageCodec(MessageCodec):
    """
    One-key objects naming the variant, bare strings for variants without
    fields. The resulting tree is framed by the given Serializer.
    """

    name = "json"

    def __init__(self, serializer: Serializer) -> None:
        self._serializer = serializer

    # Payloads

    def encode_value(self, codec: Codec, value: Any) -> Any:
        return codec.encode_json(value)

    def decode_value(self, codec: Codec, payload: Any) -> Any:
        return codec.decode_json(payload)

    def encode_operation(self, operations: OperationCodec, operation: Operation) -> Any:
        return operations.encode_json(operation)

    def decode_operation(self, operations: OperationCodec, payload: Any) -> Operation:
        return operations.decode_json(payload)

    # Envelopes

    def encode_first(self, message: First) -> bytes:
        return self._serializer.serialize(self.first_to_json(message))

    def decode_first(self, frame: bytes) -> First:
        return self.first_from_json(self._serializer.deserialize(frame))

    def encode_second(self, message: Second) -> bytes:
        return self._serializer.serialize(self.second_to_json(message))

    def decode_second(self, frame: bytes) -> Second:
        return self.second_from_json(self._serializer.deserialize(frame))

    def first_to_json(self, message: First) -> Any:
        match message:
            case Topics(topics=topics):
                return {"topics": topics.to_dict()}
            case BadStartSubset():
                return "badStartSubset"
            case FirstGenerating(topic=topic, generating=generating):
                return {"firstGenerating": {"topic": topic, "generating": self._generating_to_json(generating)}}
            case FirstOperating(topic=topic, operating=operating):
                return {"firstOperating": {"topic": topic, "operating": self._operating_to_json(operating)}}
        raise TypeError(f"Not a First message: {message!r}")

    def first_from_json(self, data: Any) -> First:
        if data == "badStartSubset":
            return BadStartSubset()

        key, body = self._variant(data)
        if key == "topics":
            return Topics(self._available_from_json(body))
        if key == "firstGenerating":
            topic, inner = self._fields(body, "topic", "generating")
            return FirstGenerating(self._topic(topic), self._generating_from_json(inner))
        if key == "firstOperating":
            topic, inner = self._fields(body, "topic", "operating")
            return FirstOperating(self._topic(topic), self._operating_from_json(inner))
        raise ParseError(f"Unknown First variant {preview(key)}", raw=data)

    def second_to_json(self, message: Second) -> Any:
        match message:
            case BadTopics(topics=topics):
                return {"badTopics": topics.to_dict()}
            case Start(topics=topics):
                return {"start": sorted(topics)}
            case SecondOperating(operating=operating):
                return {"secondOperating": self._operating_to_json(operating)}
            case SecondGenerating(generating=generating):
                return {"secondGenerating": self._generating_to_json(generating)}
        raise TypeError(f"Not a Second message: {message!r}")

    def second_from_json(self, data: Any) -> Second:
        key, body = self._variant(data)
        if key == "badTopics":
            return BadTopics(self._available_from_json(body))
        if key == "start":
            if not isinstance(body, list):
                raise ParseError("start: expected an array of topics", raw=data)
            return Start(frozenset(self._topic(t) for t in body))
        if key == "secondOperating":
            return SecondOperating(self._operating_from_json(body))
        if key == "secondGenerating":
            return SecondGenerating(self._generating_from_json(body))
        raise ParseError(f"Unknown Second variant {preview(key)}", raw=data)

    # Fields

    @staticmethod
    def _variant(data: Any) -> tuple[str, Any]:
        if not isinstance(data, dict) or len(data) != 1:
            raise ParseError(f"Expected a single-key object, got {preview(data)}", raw=data)
        (key, body), = data.items()
        return key, body

    @staticmethod
    def _fields(body: Any, *names: str) -> tuple:
        if not isinstance(body, dict) or set(body) != set(names):
            raise ParseError(f"Expected object with fields {names}, got {preview(body)}", raw=body)
        return tuple(body[name] for name in names)

    @staticmethod
    def _topic(topic: Any) -> Topic:
        try:
            return validate_topic(topic)
        except ValueError as ex:
            raise ParseError(str(ex), raw=topic) from ex

    @staticmethod
    def _available_from_json(body: Any) -> AvailableTopics:
        if not isinstance(body, dict):
            raise ParseError(f"Expected topic map, got {preview(body)}", raw=body)
        try:
            return AvailableTopics(body)
        except ValueError as ex:
            raise ParseError(str(ex), raw=body) from ex

    @staticmethod
    def _generating_to_json(generating: Generating) -> Any:
        match generating:
            case Generated(value=value, operation=operation):
                return {"generated": {"value": value, "operation": operation}}
            case BadResult(result=result):
                return {"badResult": result}
            case YourTurn():
                return "yourTurn"
            case ImFinished():
                return "imFinished"
            case NoParseOperated(result=result):
                return {"noParseOperated": result}
        raise TypeError(f"Not a Generating message: {generating!r}")

    def _generating_from_json(self, data: Any) -> Generating:
        if data == "yourTurn":
            return YourTurn()
        if data == "imFinished":
            return ImFinished()

        key, body = self._variant(data)
        if key == "generated":
            value, operation = self._fields(body, "value", "operation")
            return Generated(value, operation)
        if key == "badResult":
            return BadResult(body)
        if key == "noParseOperated":
            return NoParseOperated(body)
        raise ParseError(f"Unknown Generating variant {preview(key)}", raw=data)

    @staticmethod
    def _operating_to_json(operating: Operating) -> Any:
        match operating:
            case Operated(result=result):
                return {"operated": result}
            case NoParseValue(value=value):
                return {"noParseValue": value}
            case NoParseOperation(operation=operation):
                return {"noParseOperation": operation}
        raise TypeError(f"Not an Operating message: {operating!r}")

    def _operating_from_json(self, data: Any) -> Operating:
        key, body = self._variant(data)
        if key == "operated":
            return Operated(body)
        if key == "noParseValue":
            return NoParseValue(body)
        if key == "noParseOperation":
            return NoParseOperation(body)
        raise ParseError(f"Unknown Operating variant {preview(key)}", raw=data)
