"""Frame splitter for delimiter-separated NDC response bodies.

A streamed response body is newline-delimited text carrying several
logical messages back to back. Each message ends with a fixed marker
(``<!-- AG-EOM -->`` by default) that the protocol anchors at a line
boundary. The splitter accumulates lines and emits everything read so
far, marker included, as soon as a line containing the marker arrives.

Usage::

    splitter = FrameSplitter()
    for chunk in chunks:
        for frame in splitter.feed(chunk):
            handle(frame)
    last = splitter.finish()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = b"<!-- AG-EOM -->"


class FrameSplitter:
    """Incremental, line-oriented frame splitter.

    Owns the accumulation buffer for one streaming session. Not safe to
    share between concurrent sessions.
    """

    def __init__(self, delimiter: bytes = DEFAULT_DELIMITER) -> None:
        if not delimiter:
            raise ValueError("Frame delimiter must be a non-empty byte sequence")
        self.delimiter = delimiter
        self.dropped = 0
        self._buffer = bytearray()
        self._partial_line = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes accumulated towards the next frame (complete lines plus any partial line)."""
        return bytes(self._buffer) + bytes(self._partial_line)

    def push_line(self, line: bytes) -> bytes | None:
        """Append one line to the buffer; return a frame if the line closes one."""
        self._buffer += line
        if self.delimiter in line:
            frame = bytes(self._buffer)
            self._buffer.clear()
            return frame
        return None

    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume an arbitrary transport chunk.

        Returns:
            Frames completed by this chunk, in stream order.
        """
        frames: list[bytes] = []
        self._partial_line += chunk
        start = 0
        while True:
            end = self._partial_line.find(b"\n", start)
            if end < 0:
                break
            frame = self.push_line(bytes(self._partial_line[start : end + 1]))
            if frame is not None:
                frames.append(frame)
            start = end + 1
        del self._partial_line[:start]
        return frames

    def finish(self) -> bytes | None:
        """Flush at end of stream.

        A final line without a trailing newline is still pushed and may
        complete a frame. Whatever remains afterwards never saw the
        delimiter and is dropped.
        """
        frame = None
        if self._partial_line:
            frame = self.push_line(bytes(self._partial_line))
            self._partial_line.clear()
        if self._buffer:
            self.dropped += len(self._buffer)
            logger.debug("Dropping %d trailing bytes without frame delimiter", len(self._buffer))
            self._buffer.clear()
        return frame


def split_frames(data: bytes, delimiter: bytes = DEFAULT_DELIMITER) -> list[bytes]:
    """Split a complete body into frames, dropping any undelimited trailer."""
    splitter = FrameSplitter(delimiter)
    frames = splitter.feed(data)
    last = splitter.finish()
    if last is not None:
        frames.append(last)
    return frames


async def aiter_frames(
    byte_stream: AsyncIterator[bytes],
    splitter: FrameSplitter | None = None,
    cancel: asyncio.Event | None = None,
) -> AsyncGenerator[bytes, None]:
    """Yield frames from an async byte stream.

    The cancel event is checked before every read; once it is set the
    generator returns without flushing, so a frame in progress is never
    yielded. Transport exceptions propagate to the caller.

    Args:
        byte_stream: Async iterator of raw body chunks (e.g. ``response.aiter_bytes()``).
        splitter: Splitter to use; a default one is created if omitted.
        cancel: Optional cancellation signal.
    """
    splitter = splitter or FrameSplitter()
    iterator = byte_stream.__aiter__()
    while True:
        if cancel is not None and cancel.is_set():
            return
        try:
            chunk = await iterator.__anext__()
        except StopAsyncIteration:
            break
        for frame in splitter.feed(chunk):
            if cancel is not None and cancel.is_set():
                return
            yield frame

    last = splitter.finish()
    if last is not None:
        yield last
