"""Dispatcher: wraps a handler with access logging and fault recovery."""

import logging
import threading

from werkzeug.wrappers import Request

from accesslog.config import Config
from accesslog.destination import LineDestination, open_destination
from accesslog.formatter import Formatter, get_formatter, perf_format
from accesslog.guard import Handler, PanicGuard, invoke, stream_body
from accesslog.record import RequestRecord
from accesslog.recorder import ResponseWriter, TimedResponseRecorder
from accesslog.sink import (
    DEFAULT_CAPACITY,
    ErrorSink,
    LogSink,
    OverflowPolicy,
    QueueFullError,
)
from accesslog.wsgi import ResponseStream, start_record

logger = logging.getLogger(__name__)


class AccessLogApp:
    """WSGI application that runs *handler* for every request.

    Each request gets a RequestRecord. The handler writes through a
    TimedResponseRecorder, a fault is turned into a 500 by the PanicGuard,
    and the finished record is submitted to every registered LogSink.
    """

    def __init__(self, handler: Handler, stack_in_500: bool = False,
                 stack_in_log: bool = False):
        self.handler = handler
        self.guard = PanicGuard(stack_in_500=stack_in_500, stack_in_log=stack_in_log)
        self._loggers: list[LogSink] = []
        self._lock = threading.Lock()

    @classmethod
    def detailed(cls, handler: Handler, detailed_stacks: bool) -> "AccessLogApp":
        """One switch for stack traces in both the 500 page and the error log."""
        return cls(handler, stack_in_500=detailed_stacks, stack_in_log=detailed_stacks)

    @property
    def loggers(self) -> list[LogSink]:
        with self._lock:
            return list(self._loggers)

    @property
    def errors(self) -> ErrorSink | None:
        return self.guard.errors

    def add_logger(
        self,
        formatter: Formatter,
        destination: LineDestination | str,
        capacity: int = DEFAULT_CAPACITY,
        policy: OverflowPolicy | str = OverflowPolicy.BLOCK,
    ) -> LogSink:
        """Register an access log sink and start its consumer.

        A string destination is opened with open_destination(); an OSError
        from opening it propagates before anything is registered.
        """
        if isinstance(destination, str):
            destination = open_destination(destination)
        with self._lock:
            name = f"access-log-{len(self._loggers)}"
            sink = LogSink(formatter, destination, capacity=capacity,
                           policy=policy, name=name)
            self._loggers.append(sink)
        return sink

    def set_error_logger(
        self,
        destination: LineDestination | str,
        capacity: int = DEFAULT_CAPACITY,
        policy: OverflowPolicy | str = OverflowPolicy.BLOCK,
    ) -> ErrorSink:
        """Send recovered-fault reports to *destination*, replacing any previous one."""
        if isinstance(destination, str):
            destination = open_destination(destination)
        sink = ErrorSink(destination, capacity=capacity, policy=policy, name="error-log")
        previous, self.guard.errors = self.guard.errors, sink
        if previous is not None:
            previous.close()
        return sink

    def serve(self, writer: ResponseWriter, request: Request) -> RequestRecord:
        """Handle one request and return its completed record."""
        record = start_record(request)
        for _ in self._steps(writer, record, request):
            pass
        return record

    def _steps(self, writer: ResponseWriter, record: RequestRecord, request: Request):
        """Run the handler, yielding after each body chunk it streams out.

        The record is completed and submitted however the steps end,
        including when the server abandons the response early.
        """
        recorder = TimedResponseRecorder(writer, record)
        try:
            outcome = invoke(self.handler, recorder, request)
            if outcome.ok and outcome.body is not None:
                outcome = yield from stream_body(outcome.body, recorder)
            if not outcome.ok:
                self.guard.recover(outcome.fault, recorder)
        finally:
            record.complete()
            self._submit(record)

    def _submit(self, record: RequestRecord) -> None:
        for sink in self.loggers:
            try:
                sink.submit(record)
            except QueueFullError:
                logger.warning("Access log queue full, record for %r skipped", record.request)

    def __call__(self, environ, start_response):
        return self._stream(ResponseStream(start_response), Request(environ))

    def _stream(self, writer: ResponseStream, request: Request):
        steps = self._steps(writer, start_record(request), request)
        try:
            for _ in steps:
                yield from writer.drain()
        finally:
            steps.close()
        yield from writer.drain(final=True)

    def close(self, timeout: float = 5.0) -> None:
        """Drain and stop every sink."""
        with self._lock:
            sinks: list = list(self._loggers)
            self._loggers.clear()
        if self.guard.errors is not None:
            sinks.append(self.guard.errors)
            self.guard.errors = None
        for sink in sinks:
            sink.close(timeout=timeout)


def build_app(handler: Handler, config: Config, strict: bool = False) -> AccessLogApp:
    """Wire an AccessLogApp from Config.

    A log destination that cannot be opened is logged and skipped, or
    re-raised when *strict* is set.
    """
    app = AccessLogApp(handler, stack_in_500=config.stack_in_500,
                       stack_in_log=config.stack_in_log)
    sink_kwargs = {"capacity": config.queue_capacity, "policy": config.overflow_policy}

    access = [
        (config.access_log, get_formatter(config.access_format)),
        (config.perf_log, perf_format),
    ]
    for target, formatter in access:
        if not target:
            continue
        try:
            app.add_logger(formatter, target, **sink_kwargs)
        except OSError as e:
            if strict:
                raise
            logger.error("Cannot open access log %s: %s, continuing without it", target, e)

    if config.error_log:
        try:
            app.set_error_logger(config.error_log, **sink_kwargs)
        except OSError as e:
            if strict:
                raise
            logger.error("Cannot open error log %s: %s, continuing without it", config.error_log, e)

    return app
