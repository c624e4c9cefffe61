import reprlib
from typing import Any

_preview = reprlib.Repr()
_preview.maxstring = 60
_preview.maxother = 60


def preview(data: Any) -> str:
    """Bounded repr of untrusted input, for error messages and logs."""
    try:
        return _preview.repr(data)
    except ValueError:
        # Integers past the int-to-str digit limit
        return f"<{type(data).__name__}>"


class ParseError(ValueError):
    """
    Raised by a decoder when its input is malformed.

    A ParseError is always recoverable: the protocol reports it to the peer
    as a NoParse* message instead of failing the session.
    """
    def __init__(self, message: str, raw: Any = None) -> None:
        super().__init__(message)
        self.raw = raw
