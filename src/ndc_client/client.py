"""NDC protocol client with a streaming response demultiplexer.

Sends one POST per logical message and consumes the response either as a
whole (``request_sync``) or as a stream of delimiter-terminated frames.
Frames can be delivered to:

- a callback, run as its own task per frame (``stream_with_callback``)
- a ``FrameChannel`` (``stream_to_channel``, ``stream_cancellable``)
- the caller directly, as an async iterator (``stream``)

Every streaming session owns its response body and closes it on all exit
paths. Nothing is retried here; retries are the caller's decision.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import BaseModel, Field

from ndc_client.channel import FrameChannel
from ndc_client.config import ConfigLoader
from ndc_client.diagnostics import format_request, format_response
from ndc_client.exceptions import (
    ChannelClosedError,
    HeaderCallbackError,
    StreamReadError,
    TransportError,
    UnsupportedMethodError,
)
from ndc_client.framing import DEFAULT_DELIMITER, FrameSplitter, aiter_frames
from ndc_client.message import DEFAULT_SUPPORTED_METHODS
from ndc_client.settings import Settings, get_settings
from ndc_client.sync import WaitGroup

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable

    from ndc_client.message import Message

logger = structlog.get_logger(__name__)

# Body read failures that end a session early (as opposed to a clean EOF)
_READ_ERRORS = (httpx.HTTPError, httpx.StreamError)


class ClientOptions(BaseModel):
    """Configuration for NDCClient."""

    config_path: str = Field(..., description="Path to the YAML protocol config")
    environment: str = Field(default="prod", description="Selects server.url_<environment>")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Override headers, applied after the protocol headers",
    )
    timeout: float = Field(default=300.0, gt=0, description="HTTP timeout in seconds")
    connect_timeout: float = Field(default=10.0, gt=0)
    delimiter: str = Field(default=DEFAULT_DELIMITER.decode(), min_length=1)
    max_callback_concurrency: int | None = Field(
        default=None,
        ge=1,
        description="Cap on concurrently running frame callbacks (None = unbounded)",
    )


@dataclass(frozen=True)
class NDCResponse:
    """A fully read response."""

    status_code: int
    headers: httpx.Headers
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class CallbackContext:
    """Everything a frame callback needs to issue follow-up requests.

    Attributes:
        client: The client running the session.
        callback: The frame callback itself (for recursive sessions).
        header_callback: The header hook of the session, if any.
        barrier: Caller's barrier, or the session's own one.
        started_at: ``time.monotonic()`` at session start.
        limit: Caller-defined limit (e.g. max offers), passed through untouched.
    """

    client: NDCClient
    callback: FrameCallback
    header_callback: HeaderCallback | None
    barrier: WaitGroup
    started_at: float
    limit: int | None = None


if TYPE_CHECKING:
    FrameCallback = Callable[[str, CallbackContext], Awaitable[None] | None]
    HeaderCallback = Callable[[httpx.Headers], Awaitable[None] | None]


class NDCClient:
    """Client for an NDC endpoint.

    Usage::

        options = ClientOptions(config_path="ndc.yaml", environment="test")
        async with NDCClient(options) as client:
            result = await client.request_sync(NDCMessage("OrderRetrieveRQ", body))

            async def on_offer(frame: str, ctx: CallbackContext) -> None:
                ...

            await client.stream_with_callback(NDCMessage("AirShoppingRQ", body), on_offer)
    """

    def __init__(
        self,
        options: ClientOptions,
        *,
        config: ConfigLoader | None = None,
        http_client: httpx.AsyncClient | None = None,
        supported_methods: Iterable[str] = DEFAULT_SUPPORTED_METHODS,
    ):
        """Initialize the client.

        Args:
            options: Client options.
            config: Preloaded config (read from ``options.config_path`` if omitted).
            http_client: Shared httpx client. Not closed by ``close()``.
            supported_methods: Allowlist of protocol methods.

        Raises:
            ConfigurationError: If the config file cannot be loaded.
        """
        self.options = options
        self.config = config or ConfigLoader.from_file(options.config_path)
        self.supported_methods = frozenset(supported_methods)
        self.delimiter = options.delimiter.encode("utf-8")
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._sessions: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> NDCClient:
        """Build a client from environment settings."""
        settings = settings or get_settings()
        options = ClientOptions(
            config_path=settings.config_path,
            environment=settings.environment,
            timeout=settings.timeout,
            connect_timeout=settings.connect_timeout,
            delimiter=settings.delimiter,
            max_callback_concurrency=settings.max_callback_concurrency,
        )
        return cls(options, **kwargs)

    async def __aenter__(self) -> NDCClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the httpx.AsyncClient used for all requests."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.options.timeout, connect=self.options.connect_timeout),
            )
        return self._http_client

    async def close(self) -> None:
        """Stop background sessions and release connections."""
        for task in list(self._sessions):
            task.cancel()
        if self._sessions:
            await asyncio.gather(*self._sessions, return_exceptions=True)
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    # -------------------------------------------------------------------------
    # Request execution
    # -------------------------------------------------------------------------

    def build_request(self, message: Message) -> httpx.Request:
        """Build the POST for a message without sending it.

        Protocol headers from the config come first; override headers from
        the options replace them on conflict (case-insensitive).

        Raises:
            UnsupportedMethodError: Method is not in the allowlist.
            ConfigurationError: Config cannot be resolved for this method
                or has no URL for the active environment.
        """
        if message.method not in self.supported_methods:
            raise UnsupportedMethodError(message.method)

        config = self.config.resolve(message.method)
        url = config.server.url_for(self.options.environment)

        headers = httpx.Headers(config.rest.headers)
        for name, value in self.options.headers.items():
            headers[name] = value

        return self._get_http_client().build_request(
            "POST",
            url,
            content=message.prepare(),
            headers=headers,
        )

    async def request(self, message: Message) -> httpx.Response:
        """Send a message and return the live response (body not yet read).

        The caller owns the returned response and must close it.

        Raises:
            TransportError: If the POST fails (network, DNS, TLS, timeout).
        """
        request = self.build_request(message)
        logger.debug("ndc_request", method=message.method, dump=format_request(request))

        try:
            response = await self._get_http_client().send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(
                "ndc_transport_error",
                method=message.method,
                url=str(request.url),
                error=f"{type(e).__name__}: {e}",
            )
            raise TransportError(
                f"POST {request.url} failed: {type(e).__name__}: {e}",
                url=str(request.url),
                method=message.method,
            ) from e

        logger.info(
            "ndc_response",
            method=message.method,
            url=str(request.url),
            status_code=response.status_code,
        )
        return response

    async def request_sync(self, message: Message) -> NDCResponse:
        """Send a message and read the whole body as one result.

        Raises:
            TransportError: If the POST fails.
            StreamReadError: If the body cannot be read to completion.
        """
        response = await self.request(message)
        try:
            body = await response.aread()
        except _READ_ERRORS as e:
            raise StreamReadError(f"Failed to read response body: {e}") from e
        finally:
            await response.aclose()

        logger.debug("ndc_response_body", method=message.method, dump=format_response(response, body))
        return NDCResponse(status_code=response.status_code, headers=response.headers, body=body)

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    async def _frames(
        self,
        response: httpx.Response,
        cancel: asyncio.Event | None = None,
    ) -> AsyncGenerator[bytes, None]:
        """Split a response body into frames; read failures become StreamReadError."""
        splitter = FrameSplitter(self.delimiter)
        count = 0
        try:
            async for frame in aiter_frames(response.aiter_bytes(), splitter, cancel):
                count += 1
                yield frame
        except _READ_ERRORS as e:
            logger.warning("ndc_stream_read_error", frames=count, error=f"{type(e).__name__}: {e}")
            raise StreamReadError(
                f"Stream ended by read error after {count} frame(s): {e}",
                frames_delivered=count,
            ) from e
        logger.debug("ndc_stream_finished", frames=count, dropped_bytes=splitter.dropped)

    async def stream(self, message: Message) -> AsyncGenerator[bytes, None]:
        """Send a message and yield frames as they complete.

        Raises:
            TransportError: If the POST fails.
            StreamReadError: If the body read fails mid-stream.
        """
        response = await self.request(message)
        try:
            async for frame in self._frames(response):
                yield frame
        finally:
            await response.aclose()

    async def _call_header_callback(
        self,
        header_callback: HeaderCallback,
        headers: httpx.Headers,
    ) -> None:
        try:
            result = header_callback(headers)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise HeaderCallbackError(f"Header callback failed: {type(e).__name__}: {e}") from e

    async def _run_callback(
        self,
        callback: FrameCallback,
        frame: bytes,
        context: CallbackContext,
        barriers: tuple[WaitGroup, ...],
        slots: asyncio.Semaphore | None,
    ) -> None:
        """Run one frame callback; always signals the barriers."""
        try:
            text = frame.decode("utf-8", errors="replace")
            if inspect.iscoroutinefunction(callback):
                await callback(text, context)
            else:
                # Plain functions run in a worker thread so they don't stall the read loop
                result = await asyncio.to_thread(callback, text, context)
                if inspect.isawaitable(result):
                    await result
        except Exception:
            logger.exception("ndc_callback_failed", frame_bytes=len(frame))
        finally:
            for barrier in barriers:
                barrier.done()
            if slots is not None:
                slots.release()

    async def stream_with_callback(
        self,
        message: Message,
        callback: FrameCallback,
        *,
        header_callback: HeaderCallback | None = None,
        barrier: WaitGroup | None = None,
        limit: int | None = None,
        max_concurrency: int | None = None,
    ) -> int:
        """Stream a response, running ``callback`` as its own task per frame.

        The header callback, if given, runs once before the first read; a
        failure there is logged and the session continues. Each frame is
        counted on the barrier(s) before its task is created, and the call
        returns only after every callback of this session has finished.
        Callbacks may complete in any order. With a concurrency cap the read
        loop waits for a free slot before scheduling the next callback.

        A callback may start a nested session through ``context.client``; the
        nested call waits for its own frames only, while a caller-supplied
        ``barrier`` counts work across all sessions it is passed to.

        Args:
            message: Message to send.
            callback: ``(frame_text, context)``; coroutine function or plain function.
            header_callback: Called with the response headers before streaming.
            barrier: Optional caller barrier, incremented/decremented per frame.
            limit: Passed through to callbacks in the context.
            max_concurrency: Overrides ``options.max_callback_concurrency``.

        Returns:
            Number of frames dispatched.

        Raises:
            TransportError: If the POST fails.
            StreamReadError: If the body read failed; raised only after all
                callbacks for frames read before the failure have finished.
        """
        session_barrier = WaitGroup()
        barriers = (session_barrier,) if barrier is None else (session_barrier, barrier)
        cap = max_concurrency or self.options.max_callback_concurrency
        slots = asyncio.Semaphore(cap) if cap else None
        context = CallbackContext(
            client=self,
            callback=callback,
            header_callback=header_callback,
            barrier=barrier if barrier is not None else session_barrier,
            started_at=time.monotonic(),
            limit=limit,
        )

        response = await self.request(message)
        tasks: set[asyncio.Task[None]] = set()
        dispatched = 0
        read_error: StreamReadError | None = None
        try:
            if header_callback is not None:
                try:
                    await self._call_header_callback(header_callback, response.headers)
                except HeaderCallbackError as e:
                    logger.warning(
                        "ndc_header_callback_failed",
                        error=str(e),
                        correlation_id=e.correlation_id,
                    )

            async for frame in self._frames(response):
                if slots is not None:
                    await slots.acquire()
                for b in barriers:
                    b.add(1)
                task = asyncio.create_task(self._run_callback(callback, frame, context, barriers, slots))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
                dispatched += 1
        except StreamReadError as e:
            read_error = e
        finally:
            await response.aclose()

        await session_barrier.wait()
        logger.debug("ndc_callback_session_finished", frames=dispatched)
        if read_error is not None:
            raise read_error
        return dispatched

    async def _pump(
        self,
        response: httpx.Response,
        channel: FrameChannel,
        cancel: asyncio.Event | None = None,
    ) -> int:
        """Move frames from a response onto a channel; close both on exit."""
        sent = 0
        error: StreamReadError | None = None
        cancelled = False
        try:
            async for frame in self._frames(response, cancel):
                await channel.send(frame)
                sent += 1
        except StreamReadError as e:
            error = e
        except ChannelClosedError:
            logger.debug("ndc_channel_closed_by_consumer", frames=sent)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            cancelled = cancelled or (cancel is not None and cancel.is_set())
            await response.aclose()
            await channel.close(error, discard_pending=cancelled)
        return sent

    async def stream_to_channel(self, message: Message, channel: FrameChannel) -> int:
        """Stream a response onto ``channel`` and close it at end of stream.

        ``channel.send`` blocks while the consumer is not ready, which holds
        back the read loop. A read failure closes the channel with the
        ``StreamReadError`` attached; receivers see it after draining. If the
        consumer closes the channel the session stops early.

        Returns:
            Number of frames sent.

        Raises:
            TransportError: If the POST fails (the channel is closed first).
        """
        try:
            response = await self.request(message)
        except Exception:
            await channel.close()
            raise
        return await self._pump(response, channel)

    async def _cancellable_session(
        self,
        response: httpx.Response,
        channel: FrameChannel,
        cancel: asyncio.Event,
    ) -> None:
        pump = asyncio.create_task(self._pump(response, channel, cancel))
        stop = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait({pump, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            try:
                if not pump.done():
                    # Interrupt a pending read or send right away
                    pump.cancel()
                try:
                    await pump
                except asyncio.CancelledError:
                    # The pump's own cancellation ends here; a cancel of this session propagates
                    if asyncio.current_task().cancelling():
                        raise
            finally:
                # A pump cancelled before its first step never ran its own cleanup
                await response.aclose()
                await channel.close(discard_pending=cancel.is_set())
        if cancel.is_set():
            logger.info("ndc_stream_cancelled", frames=channel.received)

    async def stream_cancellable(
        self,
        message: Message,
        cancel: asyncio.Event,
        *,
        capacity: int = 0,
    ) -> tuple[httpx.Response, FrameChannel]:
        """Start a cancellable channel session and return immediately.

        The session runs in the background. It checks ``cancel`` before
        every read and is interrupted if ``cancel`` is set while it waits on
        a read or a send. On cancellation no partial frame is delivered and
        both the body and the channel are closed. The channel is bound to
        ``cancel``, so a receiver that sees the event set gets no further
        frames even before the session has wound down.

        Args:
            message: Message to send.
            cancel: Cancellation signal.
            capacity: Channel buffer size (0 = unbuffered).

        Returns:
            The response (headers available, body owned by the session) and
            the channel frames arrive on.

        Raises:
            TransportError: If the POST fails.
        """
        channel = FrameChannel(capacity, cancel=cancel)
        response = await self.request(message)
        session = asyncio.create_task(self._cancellable_session(response, channel, cancel))
        self._sessions.add(session)
        session.add_done_callback(self._sessions.discard)
        return response, channel
