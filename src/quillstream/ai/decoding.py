"""Incremental decoding of byte streams whose chunks split characters."""

from __future__ import annotations

import codecs

__all__ = ["StreamDecoder"]


class StreamDecoder:
    """Decode a chunked byte stream, carrying partial sequences between chunks."""

    def __init__(self, encoding: str = "utf-8", errors: str = "replace") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)

    def feed(self, data: bytes) -> str:
        if not data:
            return ""
        return self._decoder.decode(data, final=False)

    def flush(self) -> str:
        """Decode whatever is still buffered once the stream has ended."""

        return self._decoder.decode(b"", final=True)
