import msgpack
from typing import Any

from symbiote.core.ports.errors import ParseError
from symbiote.core.ports.serializer import Serializer


class MsgPackSerializer(Serializer):
    """
    MsgPack framing of the JSON message tree.

    - deterministic binary encoding
    - compact
    - carries exactly the JSON data model (no bin/ext types)
    """
    def serialize(self, message: Any) -> bytes:
        return msgpack.packb(message, use_bin_type=True)

    def deserialize(self, data: bytes) -> Any:
        try:
            return msgpack.unpackb(data, raw=False, strict_map_key=True)
        except (msgpack.exceptions.UnpackException, ValueError, TypeError, RecursionError) as ex:
            raise ParseError(f"Invalid msgpack frame: {ex}", raw=data) from ex
