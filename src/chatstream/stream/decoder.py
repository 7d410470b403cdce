"""Split a chunked response body into newline-delimited records."""

import codecs


class ChunkDecoder:
    """Turns raw chunks into complete records.

    Text after the last newline of a chunk is held back until a later chunk
    completes it. Bytes are decoded incrementally, so a multi-byte character
    split across two chunks is decoded once both halves have arrived.
    Undecodable bytes are replaced rather than raising.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet terminated by a newline."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[str]:
        """Decode ``chunk`` and return the records it completes."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk

        lines = (self._buffer + text).split("\n")
        self._buffer = lines.pop()
        return lines

    def close(self) -> str:
        """Flush the decoder and return the unterminated remainder.

        The remainder is not a complete record; callers discard it.
        """
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return remainder
