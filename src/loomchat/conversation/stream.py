"""Stream reconciliation for in-flight generations.

Hides how text deltas from the model backend are accumulated into the
ephemeral streaming node and how the authoritative message log takes
over once a generation ends.

Events travel through a bounded channel with a single producer (the
backend) and a single consumer (the reconciler), so they are applied in
exactly the order they were published.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

from ..config import EVENT_CHANNEL_SIZE
from ..errors import StreamBusyError, StreamStateError
from .models import StreamingSnapshot, StreamState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamDelta:
    """Incremental text fragment of the response."""

    text: str


@dataclass(frozen=True)
class StreamDone:
    """End of one generation cycle; the response has been persisted."""


StreamEvent = StreamDelta | StreamDone


class StreamChannel:
    """Bounded, ordered event channel for one generation cycle.

    Usage:
        channel = StreamChannel()
        # producer
        await channel.send_delta("Hel")
        await channel.send_done()
        # consumer
        async for event in channel:
            ...
    """

    def __init__(self, maxsize: int = EVENT_CHANNEL_SIZE):
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)

    async def send(self, event: StreamEvent) -> None:
        await self._queue.put(event)

    async def send_delta(self, text: str) -> None:
        await self.send(StreamDelta(text))

    async def send_done(self) -> None:
        await self.send(StreamDone())

    async def receive(self) -> StreamEvent:
        return await self._queue.get()

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        """Yield events up to and including the first StreamDone."""
        while True:
            event = await self.receive()
            yield event
            if isinstance(event, StreamDone):
                return


class StreamReconciler:
    """State machine for the generation lifecycle of one thread.

    Idle -> Streaming -> Completing | Failed -> Idle

    The transient buffer is never persisted: on completion the thread is
    reloaded from storage, on failure it is discarded.
    """

    def __init__(
        self,
        thread_id: int,
        reload: Callable[[], Awaitable[None]] | None = None,
        on_change: Callable[[StreamingSnapshot], None] | None = None,
    ) -> None:
        self.thread_id = thread_id
        self._reload = reload
        self._on_change = on_change
        self._state = StreamState.IDLE
        self._content = ""
        self._last_error: BaseException | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def active(self) -> bool:
        """True while a generation is in flight; callers must not start another."""
        return self._state == StreamState.STREAMING

    @property
    def content(self) -> str:
        return self._content

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def snapshot(self) -> StreamingSnapshot:
        return StreamingSnapshot(content=self._content, active=self.active)

    def _transition(self, state: StreamState) -> None:
        logger.debug("Thread %s stream: %s -> %s", self.thread_id, self._state.value, state.value)
        self._state = state

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot)

    def _require(self, state: StreamState, action: str) -> None:
        if self._state != state:
            raise StreamStateError(
                f"Cannot {action} for thread {self.thread_id} in state {self._state.value}"
            )

    def begin(self) -> None:
        """Start a generation cycle.

        Raises:
            StreamBusyError: If the thread is not idle
        """
        if self._state != StreamState.IDLE:
            raise StreamBusyError(self.thread_id)
        self._content = ""
        self._last_error = None
        self._transition(StreamState.STREAMING)
        self._notify()

    def apply_delta(self, text: str) -> None:
        """Append a text fragment, in arrival order."""
        self._require(StreamState.STREAMING, "apply a delta")
        self._content += text
        self._notify()

    async def complete(self) -> None:
        """Finish the cycle and reload the authoritative message log."""
        self._require(StreamState.STREAMING, "complete")
        self._transition(StreamState.COMPLETING)
        self._content = ""
        try:
            self._notify()
            if self._reload is not None:
                await self._reload()
        finally:
            self._transition(StreamState.IDLE)

    async def fail(self, error: BaseException) -> None:
        """Abort the cycle after a request-level error.

        The buffer is discarded and persisted messages are reloaded so any
        optimistic local change is rolled back.
        """
        self._require(StreamState.STREAMING, "fail")
        self._transition(StreamState.FAILED)
        self._last_error = error
        self._content = ""
        logger.warning("Generation failed for thread %s: %s", self.thread_id, error)
        try:
            self._notify()
            if self._reload is not None:
                await self._reload()
        finally:
            self._transition(StreamState.IDLE)

    async def handle(self, event: StreamEvent) -> None:
        if isinstance(event, StreamDelta):
            self.apply_delta(event.text)
        elif isinstance(event, StreamDone):
            await self.complete()
        else:
            raise StreamStateError(f"Unknown stream event: {event!r}")

    async def pump(self, channel: StreamChannel) -> None:
        """Consume a channel until its StreamDone event has been applied."""
        async for event in channel:
            await self.handle(event)
