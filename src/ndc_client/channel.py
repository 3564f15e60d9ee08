"""Frame delivery channel.

A small channel abstraction over asyncio used as the sink of the
channel-mode dispatchers. With ``capacity=0`` (the default) it is a
rendezvous: ``send()`` only returns once a receiver has taken the frame,
so the reading side of a session can never run ahead of its consumer.

Usage::

    channel = FrameChannel()
    task = asyncio.create_task(client.stream_to_channel(message, channel))
    async for frame in channel:
        handle(frame)
    await task
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque

from ndc_client.exceptions import ChannelClosedError, StreamReadError


class FrameChannel:
    """Closable frame channel with optional buffering.

    Closing wakes every waiter. Receivers drain buffered frames first and
    then get ``ChannelClosedError`` (or the ``StreamReadError`` the channel
    was closed with). Iteration stops cleanly on a plain close.

    A channel bound to a ``cancel`` event stops delivering as soon as the
    event is set: the next ``send()`` or ``receive()`` drops every frame not
    yet received, closes the channel and raises ``ChannelClosedError``,
    without waiting for the producer to notice.
    """

    def __init__(self, capacity: int = 0, *, cancel: asyncio.Event | None = None) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self.capacity = capacity
        self.error: StreamReadError | None = None
        self.sent = 0
        self.received = 0
        self._cancel = cancel
        self._closed = False
        self._buffer: deque[tuple[int, bytes]] = deque()
        self._tickets = itertools.count(1)
        self._last_taken = 0
        self._cond = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def _has_room(self) -> bool:
        return len(self._buffer) < max(self.capacity, 1)

    def _queued(self, ticket: int) -> bool:
        return any(t == ticket for t, _ in self._buffer)

    def _withdraw(self, ticket: int) -> None:
        for entry in self._buffer:
            if entry[0] == ticket:
                self._buffer.remove(entry)
                self.sent -= 1
                self._cond.notify_all()
                return

    def _discard_pending(self) -> None:
        self.sent -= len(self._buffer)
        self._buffer.clear()

    def _observe_cancel(self) -> bool:
        """Close and empty the channel if the cancel event is set. Caller holds the lock."""
        if not self.cancelled:
            return False
        self._discard_pending()
        self._closed = True
        self._cond.notify_all()
        return True

    async def send(self, frame: bytes) -> None:
        """Send a frame, waiting for room (or, unbuffered, for a receiver).

        Raises:
            ChannelClosedError: If the channel is closed or cancelled before
                the frame was accepted, or the frame was discarded by the close.
        """
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or self.cancelled or self._has_room())
            if self._observe_cancel() or self._closed:
                raise ChannelClosedError("send on closed frame channel")

            ticket = next(self._tickets)
            self._buffer.append((ticket, frame))
            self.sent += 1
            self._cond.notify_all()
            if self.capacity:
                return

            try:
                await self._cond.wait_for(lambda: self._last_taken >= ticket or self._closed)
            except asyncio.CancelledError:
                # A cancelled send must not leave its frame behind for a receiver
                self._withdraw(ticket)
                raise

            if self._last_taken < ticket and not self._queued(ticket):
                raise ChannelClosedError("frame discarded by channel close")

    async def receive(self) -> bytes:
        """Receive the next frame.

        Raises:
            StreamReadError: Channel was closed because the stream failed.
            ChannelClosedError: Channel is closed and drained, or cancelled.
        """
        async with self._cond:
            await self._cond.wait_for(lambda: bool(self._buffer) or self._closed or self.cancelled)
            if self._observe_cancel():
                raise ChannelClosedError("receive on cancelled frame channel")
            if self._buffer:
                ticket, frame = self._buffer.popleft()
                self._last_taken = ticket
                self.received += 1
                self._cond.notify_all()
                return frame
            if self.error is not None:
                raise self.error
            raise ChannelClosedError("receive on closed frame channel")

    async def close(
        self,
        error: StreamReadError | None = None,
        *,
        discard_pending: bool = False,
    ) -> None:
        """Close the channel. Idempotent; the first error recorded wins.

        Args:
            error: Read failure that ended the session, if any.
            discard_pending: Drop buffered frames no receiver has taken yet.
        """
        async with self._cond:
            if error is not None and self.error is None:
                self.error = error
            if discard_pending:
                self._discard_pending()
            self._closed = True
            self._cond.notify_all()

    def __aiter__(self) -> FrameChannel:
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None
