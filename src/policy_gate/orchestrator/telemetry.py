"""Best-effort telemetry: fire-and-forget events drained by a background worker."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryEvent:
    """A side-channel record (violation, performance sample, audit entry)."""

    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


TelemetrySink = Callable[[TelemetryEvent], Awaitable[None]]


class TelemetryQueue:
    """Bounded queue decoupling telemetry from the review's decision path.

    submit() never blocks and never raises. Events that do not fit are
    dropped, and a sink that fails only loses its own copy of the event.
    """

    def __init__(self, sinks: Sequence[TelemetrySink] = (), max_queue_size: int = 1000) -> None:
        self.sinks: list[TelemetrySink] = list(sinks)
        self._queue: asyncio.Queue[TelemetryEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task | None = None
        self.dropped = 0

    def add_sink(self, sink: TelemetrySink) -> None:
        self.sinks.append(sink)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, event: TelemetryEvent) -> bool:
        """Enqueue an event without waiting.

        Returns:
            True if queued, False if the queue was full and the event was dropped
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Telemetry queue full, dropping {event.kind} event")
            return False
        return True

    async def start(self) -> None:
        """Start the background worker if it is not running."""
        if not self.running:
            self._worker = asyncio.create_task(self._drain(), name="telemetry-worker")

    async def join(self) -> None:
        """Wait until every queued event has been handed to the sinks."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker, optionally delivering queued events first."""
        if drain and self.running:
            await self.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for sink in self.sinks:
                    try:
                        await sink(event)
                    except Exception as e:
                        logger.warning(f"Telemetry sink failed for {event.kind} event: {e}")
            finally:
                self._queue.task_done()
