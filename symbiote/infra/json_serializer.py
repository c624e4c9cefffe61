import json
from typing import Any

from symbiote.core.ports.errors import ParseError
from symbiote.core.ports.serializer import Serializer


class JsonSerializer(Serializer):
    """
    UTF-8 JSON text framing of the message tree.

    Keys are sorted and separators compact so that a given tree always
    produces the same bytes.
    """
    def serialize(self, message: Any) -> bytes:
        return json.dumps(
            message,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        # ValueError also covers integer literals past the digit limit
        try:
            return json.loads(data.decode("utf-8"))
        except (ValueError, RecursionError) as ex:
            raise ParseError(f"Invalid JSON frame: {ex}", raw=data) from ex
