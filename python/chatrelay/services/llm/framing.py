"""Line framing for chunked provider and relay streams.

Raw chunks never align with protocol frames: a chunk may end mid-line and
mid-UTF-8 character. LineBuffer keeps the incomplete tail for the next chunk
so that feeding a stream in any chunking yields the same lines as feeding it
in one piece.
"""

import codecs

DATA_PREFIX = "data:"


class LineBuffer:
    """Accumulates raw chunks and releases complete lines.

    Lines are returned without their terminator; a trailing "\\r" (CRLF
    streams) is stripped as well.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        """Append a chunk and return every line it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._pending += chunk

        *lines, self._pending = self._pending.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def flush(self) -> list[str]:
        """Release whatever is left once the stream has ended.

        Providers may close the connection without a final newline; the tail
        is still a frame.
        """
        self._pending += self._decoder.decode(b"", final=True)
        tail, self._pending = self._pending, ""
        tail = tail.removesuffix("\r")
        return [tail] if tail else []

    @property
    def pending(self) -> str:
        """Incomplete line currently held back."""
        return self._pending


def data_payload(line: str, prefix: str = DATA_PREFIX) -> str | None:
    """Return the payload of an SSE data line, or None for any other line.

    Both "data: {...}" and "data:{...}" are accepted. Comments (": ..."),
    "event:" lines and blank keep-alives are not data frames.
    """
    if not line.startswith(prefix):
        return None
    payload = line[len(prefix) :]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload
