"""Asynchronous log sinks: one bounded queue and one consumer thread each.

Request threads submit finished records; the consumer formats them and
writes one line per record to its destination. A full queue is handled
according to the sink's OverflowPolicy; the default blocks the producer
until the consumer catches up.
"""

import logging
import queue
import threading
from enum import Enum

from accesslog.destination import LineDestination
from accesslog.formatter import Formatter
from accesslog.record import RequestRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000

_STOP = object()


class OverflowPolicy(str, Enum):
    BLOCK = "block"
    DROP_NEWEST = "drop_newest"
    DROP_OLDEST = "drop_oldest"
    ERROR = "error"


class QueueFullError(Exception):
    """Raised by submit() on a full queue under OverflowPolicy.ERROR."""


class _QueueSink:
    """Bounded queue drained by a dedicated daemon thread.

    Subclasses turn a queued item into a line via _render().
    """

    def __init__(
        self,
        destination: LineDestination,
        capacity: int = DEFAULT_CAPACITY,
        policy: OverflowPolicy | str = OverflowPolicy.BLOCK,
        autostart: bool = True,
        name: str | None = None,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._destination = destination
        self._capacity = capacity
        self._policy = OverflowPolicy(policy)
        self._queue: queue.Queue = queue.Queue(maxsize=capacity)

        self._lock = threading.Lock()
        self._written = 0
        self._dropped = 0
        self._started = False
        self._closed = False
        self._inflight = 0
        self._idle = threading.Condition(self._lock)

        self._thread = threading.Thread(
            target=self._consumer_loop, name=name or type(self).__name__, daemon=True
        )
        if autostart:
            self.start()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def policy(self) -> OverflowPolicy:
        return self._policy

    @property
    def pending(self) -> int:
        """Items queued but not yet taken by the consumer."""
        return self._queue.qsize()

    @property
    def written(self) -> int:
        with self._lock:
            return self._written

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def start(self) -> None:
        """Start the consumer thread. Safe to call more than once."""
        with self._lock:
            if self._started or self._closed:
                return
            self._started = True
        self._thread.start()
        logger.debug("%s consumer started (capacity=%d, policy=%s)",
                     self._thread.name, self._capacity, self._policy.value)

    def submit(self, item) -> bool:
        """Queue an item for the consumer.

        Returns False when the item was dropped. Under BLOCK this waits for
        free space with no timeout.
        """
        with self._lock:
            closed = self._closed
            if closed:
                self._dropped += 1
            else:
                self._inflight += 1
        if closed:
            logger.debug("%s is closed, dropping item", self._thread.name)
            return False

        try:
            return self._enqueue(item)
        finally:
            with self._idle:
                self._inflight -= 1
                if not self._inflight:
                    self._idle.notify_all()

    def _enqueue(self, item) -> bool:
        if self._policy is OverflowPolicy.BLOCK:
            self._queue.put(item)
            return True

        try:
            self._queue.put_nowait(item)
            return True
        except queue.Full:
            pass

        if self._policy is OverflowPolicy.ERROR:
            raise QueueFullError(f"{self._thread.name} queue is full ({self._capacity} items)")
        if self._policy is OverflowPolicy.DROP_NEWEST:
            self._record_drop()
            return False

        # DROP_OLDEST: evict from the head until the new item fits.
        while True:
            try:
                evicted = self._queue.get_nowait()
            except queue.Empty:
                pass
            else:
                if evicted is _STOP:
                    # close() gave up waiting for this submit; the sentinel stays.
                    self._queue.put(_STOP)
                    self._record_drop()
                    return False
                self._record_drop()
            try:
                self._queue.put_nowait(item)
                return True
            except queue.Full:
                continue

    def close(self, timeout: float = 5.0) -> None:
        """Stop accepting items, drain the queue and join the consumer.

        Submits already under way are let finish before the sentinel is
        queued. A destination with a close() method, such as
        FileDestination, is closed once the queue is drained.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            started = self._started
            if started and not self._idle.wait_for(lambda: not self._inflight, timeout=timeout):
                logger.warning("%s still has %d submits in flight after %.1fs",
                               self._thread.name, self._inflight, timeout)

        if started:
            try:
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("%s queue still full after %.1fs, not draining",
                               self._thread.name, timeout)
                return
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("%s did not drain within %.1fs", self._thread.name, timeout)
                return

        close_destination = getattr(self._destination, "close", None)
        if close_destination is not None:
            close_destination()

        logger.info("%s closed: written=%d, dropped=%d",
                    self._thread.name, self.written, self.dropped)

    def _render(self, item) -> str:
        raise NotImplementedError

    def _record_drop(self) -> None:
        with self._lock:
            self._dropped += 1

    def _consumer_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            self._deliver(item)
        # Items queued behind the sentinel.
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not _STOP:
                self._deliver(item)

    def _deliver(self, item) -> None:
        try:
            line = self._render(item)
        except Exception:
            logger.exception("%s failed to format entry, skipping", self._thread.name)
            return

        try:
            self._destination.write_line(line)
        except (OSError, ValueError):
            logger.debug("%s write failed, line discarded", self._thread.name, exc_info=True)
            return
        except Exception:
            logger.exception("%s destination raised, line discarded", self._thread.name)
            return

        with self._lock:
            self._written += 1


class LogSink(_QueueSink):
    """Formats completed RequestRecords and writes them to a destination."""

    def __init__(self, formatter: Formatter, destination: LineDestination, **kwargs):
        self._formatter = formatter
        super().__init__(destination, **kwargs)

    @property
    def formatter(self) -> Formatter:
        return self._formatter

    def _render(self, record: RequestRecord) -> str:
        return self._formatter(record)


class ErrorSink(_QueueSink):
    """Writes pre-formatted error reports verbatim."""

    def _render(self, message: str) -> str:
        return message
