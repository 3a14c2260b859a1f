"""Single-worker FIFO queue that serializes generation requests.

At most one request is in service at any time. ``enqueue`` appends an item
and starts the worker only when no worker is running; the worker drains the
queue strictly in order and exits when it is empty.

State machine::

    Empty --enqueue--> Draining --queue empty--> Empty

Each item owns an ``asyncio.Future``. A processor exception rejects only that
item's future; the worker moves on to the next item. An optional per-item
timeout resolves a stuck item with a TIMEOUT result so the queue keeps
draining.

Usage Example
-------------
    >>> queue = RequestQueue(service.process, average_processing_seconds=30)
    >>> ticket = queue.enqueue(request)
    >>> ticket.estimated_wait_seconds
    30.0
    >>> result = await ticket
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass, field
from typing import Any

from .errors import ErrorCode, HarvestError, QueueClearedError
from .results import GenerationRequest, GenerationResult, new_request_id

logger = logging.getLogger(__name__)

Processor = Callable[[GenerationRequest], Awaitable[GenerationResult]]

STALE_ITEM_SECONDS = 300.0
BACKLOG_WARNING_LENGTH = 10


@dataclass
class QueueItem:
    request: GenerationRequest
    future: asyncio.Future
    enqueued_at: float
    id: str = field(default_factory=new_request_id)


@dataclass
class QueueTicket:
    """Handle returned by :meth:`RequestQueue.enqueue`; await it for the result."""

    id: str
    position: int
    estimated_wait_seconds: float
    future: asyncio.Future

    def __await__(self) -> Generator[Any, None, GenerationResult]:
        return self.future.__await__()


class RequestQueue:
    """FIFO queue with one worker.

    Args:
        processor: Coroutine function turning a request into a result
        average_processing_seconds: Fixed per-item estimate for wait times
        item_timeout_seconds: Per-item timeout; None waits indefinitely
        clock: Monotonic clock for item ages
    """

    def __init__(
        self,
        processor: Processor,
        average_processing_seconds: float = 30.0,
        item_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._processor = processor
        self.average_processing_seconds = average_processing_seconds
        self.item_timeout_seconds = item_timeout_seconds
        self._clock = clock

        self._items: deque[QueueItem] = deque()
        self._current: QueueItem | None = None
        self._processing = False
        self._worker: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def estimate_wait(self, position: int) -> float:
        """Seconds until an item at 1-based ``position`` starts."""
        ahead = position - (1 if self._processing else 0)
        return max(ahead, 0) * self.average_processing_seconds

    def enqueue(self, request: GenerationRequest) -> QueueTicket:
        """Append a request and start the worker if none is running.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        item = QueueItem(request=request, future=loop.create_future(), enqueued_at=self._clock())

        self._items.append(item)
        position = len(self._items) + (1 if self._current is not None else 0)
        wait = self.estimate_wait(position)

        logger.info(
            f"Queued request {item.id} at position {position} "
            f"(estimated wait {wait:.0f}s): {request.prompt[:50]}..."
        )

        if not self._processing:
            self._processing = True
            self._worker = loop.create_task(self._drain())

        return QueueTicket(
            id=item.id, position=position, estimated_wait_seconds=wait, future=item.future
        )

    async def _run(self, item: QueueItem) -> GenerationResult:
        if self.item_timeout_seconds is None:
            return await self._processor(item.request)

        try:
            return await asyncio.wait_for(
                self._processor(item.request), timeout=self.item_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Request {item.id} exceeded queue timeout of {self.item_timeout_seconds:g}s"
            )
            return GenerationResult.failure(
                None,
                HarvestError(
                    "Image generation timed out",
                    code=ErrorCode.TIMEOUT,
                    details=f"Exceeded {self.item_timeout_seconds:g}s in queue",
                ),
                request_id=item.id,
            )

    async def _drain(self) -> None:
        try:
            while self._items:
                item = self._items.popleft()
                self._current = item
                try:
                    result = await self._run(item)
                except asyncio.CancelledError:
                    item.future.cancel()
                    raise
                except Exception as e:
                    logger.error(f"Request {item.id} failed: {e}", exc_info=True)
                    if not item.future.done():
                        item.future.set_exception(e)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
                finally:
                    self._current = None
        finally:
            self._processing = False
            self._worker = None

    def get_queue_status(self) -> dict[str, Any]:
        return {
            "length": len(self._items),
            "is_processing": self._processing,
            "current": self._current.request.summary() if self._current else None,
            "pending_summaries": [
                {"id": item.id, **item.request.summary()} for item in self._items
            ],
        }

    def get_health(self) -> dict[str, Any]:
        """Report ``healthy``, ``warning`` (stale or long backlog) or ``error``."""
        now = self._clock()
        oldest = max((now - item.enqueued_at for item in self._items), default=0.0)
        issues = []
        status = "healthy"

        if oldest > STALE_ITEM_SECONDS:
            status = "warning"
            issues.append(f"Oldest request has waited {oldest:.0f}s")
        if len(self._items) > BACKLOG_WARNING_LENGTH:
            status = "warning"
            issues.append(f"{len(self._items)} requests waiting")
        if self._processing and not self._items and self._current is None:
            status = "error"
            issues.append("Worker flagged as processing with an empty queue")

        return {
            "status": status,
            "issues": issues,
            "length": len(self._items),
            "oldest_wait_seconds": round(oldest, 1),
        }

    def clear(self) -> int:
        """Reject every pending item with QueueClearedError. Returns the count."""
        cleared = 0
        while self._items:
            item = self._items.popleft()
            if not item.future.done():
                item.future.set_exception(QueueClearedError("Request queue was cleared"))
            cleared += 1
        if cleared:
            logger.warning(f"Cleared {cleared} pending requests")
        return cleared

    async def close(self) -> None:
        """Clear pending items and stop the worker."""
        self.clear()
        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
