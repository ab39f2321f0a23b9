"""
Bounded bridge between the binlog client's delivery thread and the consumer.

The client pushes decoded change events and position updates; the consumer
pulls one event per call. A full queue blocks the producer, which is the only
flow control against the binlog source.

Ordering: the client pushes an event before it advances the position to the
end of that event. The checkpoint position only moves past an event once the
consumer has acknowledged it, either explicitly with `ack()` or by taking the
next event. While events are queued or in flight the checkpoint stays at the
last acknowledged event; once nothing is pending it follows the client's
latest position, which covers filtered-out events. Events dropped on close
are therefore replayed after a restart.
"""

import logging
import queue
import threading
import time
from typing import Any, Optional

from core.exceptions import StreamFault
from core.models import ChangeEvent, Position

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 500


class EventSink:
    """Single-producer / single-consumer bounded event bridge."""

    def __init__(
        self,
        capacity: int,
        categories: Optional[list[str]] = None,
        paving_data: bool = False,
        initial_position: Optional[Position] = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        """
        Initialize event sink.

        Args:
            capacity: Maximum number of queued events
            categories: Accepted event types (INSERT/UPDATE/DELETE), empty for all
            paving_data: Flatten before/after maps in `take_record`
            initial_position: Position reported until the first advance
            poll_interval_ms: Wake-up interval of blocked push/take calls
        """
        if capacity < 1:
            raise ValueError(f"EventSink capacity must be positive, got {capacity}")

        self._queue: queue.Queue[ChangeEvent] = queue.Queue(maxsize=capacity)
        self._capacity = capacity
        self._categories = [c.upper() for c in (categories or [])]
        self._paving_data = paving_data
        self._poll_interval = poll_interval_ms / 1000

        # Guards every position field and the pending counter
        self._position_lock = threading.Lock()
        self._latest_position = initial_position
        self._confirmed_position = initial_position
        self._in_flight: Optional[ChangeEvent] = None
        self._pending = 0

        self._closed = threading.Event()
        self._error: Optional[BaseException] = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def paving_data(self) -> bool:
        return self._paving_data

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def latest_position(self) -> Optional[Position]:
        """Latest position reported by the client."""
        with self._position_lock:
            return self._latest_position

    @property
    def checkpoint_position(self) -> Optional[Position]:
        """
        Position safe to persist.

        Never past an event that is still queued or not yet acknowledged.
        """
        with self._position_lock:
            if self._pending == 0:
                return self._latest_position
            return self._confirmed_position

    def qsize(self) -> int:
        return self._queue.qsize()

    def accept(self, event_type: str) -> bool:
        """Check whether an event type passes the category filter."""
        return not self._categories or event_type.upper() in self._categories

    def push(self, event: ChangeEvent) -> bool:
        """
        Enqueue an event, blocking while the queue is full.

        Called from the binlog client's delivery thread.

        Returns:
            False if the sink was closed before the event could be queued
        """
        if not self.accept(event.event_type.value):
            return True

        with self._position_lock:
            if self._pending == 0:
                self._confirmed_position = self._latest_position
            self._pending += 1

        while not self._closed.is_set():
            try:
                self._queue.put(event, timeout=self._poll_interval)
                return True
            except queue.Full:
                continue

        with self._position_lock:
            self._pending -= 1
        logger.debug(f"Sink closed, dropping event for {event.qualified_table}")
        return False

    def advance_position(self, position: Position) -> None:
        """Record the latest position reported by the client (position observer)."""
        with self._position_lock:
            self._latest_position = position

    def _ack_locked(self) -> None:
        event, self._in_flight = self._in_flight, None
        if event is None:
            return
        if event.position is not None:
            self._confirmed_position = event.position
        self._pending -= 1

    def ack(self) -> None:
        """Mark the last taken event as handled by the consumer."""
        with self._position_lock:
            self._ack_locked()

    def fail(self, error: BaseException) -> None:
        """Record a producer fault; raised to the consumer once the queue drains."""
        self._error = error

    def take_event(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """
        Take the next event, blocking until one is available.

        Taking an event acknowledges the previously taken one.

        Args:
            timeout: Optional maximum wait in seconds

        Returns:
            The next event, or None when the sink is closed or the timeout expires

        Raises:
            StreamFault: If the producer failed and no events are left
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while not self._closed.is_set():
            wait = self._poll_interval
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - time.monotonic()))

            try:
                event = self._queue.get(timeout=wait)
            except queue.Empty:
                pass
            else:
                with self._position_lock:
                    self._ack_locked()
                    self._in_flight = event
                return event

            if self._error is not None:
                error = self._error
                if isinstance(error, StreamFault):
                    raise error
                raise StreamFault(f"Binlog stream failed: {error}") from error

            if deadline is not None and time.monotonic() >= deadline:
                return None

        return None

    def take_record(self, timeout: Optional[float] = None) -> Optional[dict[str, Any]]:
        """Take the next event rendered as a record, honouring the paving mode."""
        event = self.take_event(timeout)
        if event is None:
            return None
        return event.to_record(self._paving_data)

    def close(self) -> None:
        """Close the sink, releasing blocked producers and consumers."""
        if self._closed.is_set():
            return
        self._closed.set()
        logger.info(f"Event sink closed with {self._queue.qsize()} undelivered event(s)")
