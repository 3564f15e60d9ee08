"""Unit tests for FrameChannel."""

import asyncio

import pytest

from ndc_client.channel import FrameChannel
from ndc_client.exceptions import ChannelClosedError, StreamReadError


async def _settle():
    """Let pending tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestUnbufferedChannel:
    """capacity=0 is a rendezvous: send waits for a receiver."""

    @pytest.mark.asyncio
    async def test_send_blocks_until_received(self):
        channel = FrameChannel()
        send = asyncio.create_task(channel.send(b"frame-1"))
        await _settle()
        assert not send.done()

        assert await channel.receive() == b"frame-1"
        await _settle()
        assert send.done()
        assert channel.sent == 1
        assert channel.received == 1

    @pytest.mark.asyncio
    async def test_second_send_waits_for_first_receive(self):
        channel = FrameChannel()
        first = asyncio.create_task(channel.send(b"a"))
        second = asyncio.create_task(channel.send(b"b"))
        await _settle()
        assert not first.done()
        assert not second.done()

        assert await channel.receive() == b"a"
        assert await channel.receive() == b"b"
        await asyncio.gather(first, second)

    @pytest.mark.asyncio
    async def test_slow_consumer_gets_every_frame_once(self):
        channel = FrameChannel()
        frames = [f"<Offer {i}/>".encode() for i in range(20)]

        async def produce():
            for frame in frames:
                await channel.send(frame)
            await channel.close()

        producer = asyncio.create_task(produce())
        received = []
        async for frame in channel:
            received.append(frame)
            await asyncio.sleep(0.001)
        await producer

        assert received == frames

    @pytest.mark.asyncio
    async def test_cancelled_send_withdraws_frame(self):
        channel = FrameChannel()
        send = asyncio.create_task(channel.send(b"late"))
        await _settle()
        send.cancel()
        with pytest.raises(asyncio.CancelledError):
            await send

        await channel.close()
        with pytest.raises(ChannelClosedError):
            await channel.receive()
        assert channel.sent == 0


class TestBufferedChannel:
    """capacity>0 buffers frames without a receiver."""

    @pytest.mark.asyncio
    async def test_send_returns_while_room(self):
        channel = FrameChannel(capacity=2)
        await channel.send(b"a")
        await channel.send(b"b")
        third = asyncio.create_task(channel.send(b"c"))
        await _settle()
        assert not third.done()

        assert await channel.receive() == b"a"
        await third
        assert await channel.receive() == b"b"
        assert await channel.receive() == b"c"

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            FrameChannel(capacity=-1)


class TestClose:
    """close() semantics."""

    @pytest.mark.asyncio
    async def test_iteration_stops_on_close(self):
        channel = FrameChannel(capacity=1)
        await channel.send(b"a")
        await channel.close()

        assert [frame async for frame in channel] == [b"a"]
        assert channel.closed

    @pytest.mark.asyncio
    async def test_empty_closed_channel_yields_nothing(self):
        channel = FrameChannel()
        await channel.close()
        assert [frame async for frame in channel] == []

    @pytest.mark.asyncio
    async def test_send_on_closed_channel_raises(self):
        channel = FrameChannel()
        await channel.close()
        with pytest.raises(ChannelClosedError):
            await channel.send(b"a")

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_receiver(self):
        channel = FrameChannel()
        receiver = asyncio.create_task(channel.receive())
        await _settle()
        await channel.close()
        with pytest.raises(ChannelClosedError):
            await receiver

    @pytest.mark.asyncio
    async def test_error_raised_after_drain(self):
        channel = FrameChannel(capacity=1)
        await channel.send(b"a")
        await channel.close(StreamReadError("connection reset", frames_delivered=1))

        received = []
        with pytest.raises(StreamReadError, match="connection reset"):
            async for frame in channel:
                received.append(frame)
        assert received == [b"a"]

    @pytest.mark.asyncio
    async def test_discard_pending(self):
        channel = FrameChannel(capacity=3)
        await channel.send(b"a")
        await channel.send(b"b")
        await channel.close(discard_pending=True)

        assert [frame async for frame in channel] == []
        assert channel.sent == 0

    @pytest.mark.asyncio
    async def test_discard_fails_blocked_sender(self):
        channel = FrameChannel()
        send = asyncio.create_task(channel.send(b"a"))
        await _settle()
        await channel.close(discard_pending=True)
        with pytest.raises(ChannelClosedError):
            await send

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_keeps_first_error(self):
        channel = FrameChannel()
        first = StreamReadError("first")
        await channel.close(first)
        await channel.close(StreamReadError("second"))
        await channel.close()
        assert channel.error is first


class TestCancelBinding:
    """A channel bound to a cancel event stops delivering once it is set."""

    @pytest.mark.asyncio
    async def test_buffered_frames_dropped_on_receive(self):
        cancel = asyncio.Event()
        channel = FrameChannel(capacity=3, cancel=cancel)
        await channel.send(b"a")
        await channel.send(b"b")
        cancel.set()

        with pytest.raises(ChannelClosedError):
            await channel.receive()
        assert channel.closed
        assert channel.sent == 0

    @pytest.mark.asyncio
    async def test_iteration_ends_without_frames(self):
        cancel = asyncio.Event()
        channel = FrameChannel(capacity=2, cancel=cancel)
        await channel.send(b"a")
        cancel.set()

        assert [frame async for frame in channel] == []

    @pytest.mark.asyncio
    async def test_blocked_sender_fails_when_receiver_sees_cancel(self):
        cancel = asyncio.Event()
        channel = FrameChannel(cancel=cancel)
        send = asyncio.create_task(channel.send(b"a"))
        await _settle()
        cancel.set()

        with pytest.raises(ChannelClosedError):
            await channel.receive()
        with pytest.raises(ChannelClosedError):
            await send

    @pytest.mark.asyncio
    async def test_send_after_cancel_rejected(self):
        cancel = asyncio.Event()
        channel = FrameChannel(capacity=1, cancel=cancel)
        cancel.set()

        with pytest.raises(ChannelClosedError):
            await channel.send(b"a")
        assert channel.sent == 0

    @pytest.mark.asyncio
    async def test_cancel_wins_over_stream_error(self):
        cancel = asyncio.Event()
        channel = FrameChannel(capacity=1, cancel=cancel)
        await channel.send(b"a")
        await channel.close(StreamReadError("reset"))
        cancel.set()

        assert [frame async for frame in channel] == []
