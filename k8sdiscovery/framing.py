"""Newline framing for watch response bodies."""

from typing import List

NEWLINE = b"\n"


class FrameBuffer:
    """Accumulates body chunks and hands out complete newline-terminated lines.

    The API server writes one JSON object per line, but a body chunk may carry
    part of a line, exactly one line, or several. Anything after the last
    newline stays buffered until the next chunk arrives.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def append(self, chunk: bytes) -> None:
        self._buffer.extend(chunk)

    def extract_ready_messages(self) -> List[bytes]:
        """Remove and return every complete line, without its terminator."""
        end = self._buffer.rfind(NEWLINE)
        if end < 0:
            return []

        ready = bytes(self._buffer[:end])
        del self._buffer[:end + 1]
        return [line.rstrip(b"\r") for line in ready.split(NEWLINE)]

    def clear(self) -> None:
        self._buffer.clear()
