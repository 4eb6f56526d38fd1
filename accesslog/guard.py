"""Handler fault capture and the fixed 500 response that replaces it."""

import logging
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Generator, Iterable

from markupsafe import escape

from accesslog.formatter import format_timestamp
from accesslog.record import now
from accesslog.recorder import ResponseWriter
from accesslog.sink import ErrorSink, QueueFullError

logger = logging.getLogger(__name__)

ERROR_PAGE_SHORT = "<html><body><h1>500 Internal server error</h1></body></html>"
ERROR_PAGE_DETAILED = (
    "<html><body><h1>500 Internal server error</h1>"
    "<p>A runtime error has just happened:</p><ul><li>{error}</li></ul>"
    "<p>Stack trace of the problem:</p><pre>{stack}</pre></body></html>"
)

# A handler writes through the writer, and may also return an iterable of
# body chunks to be written one at a time after it returns.
Handler = Callable[[ResponseWriter, Any], Iterable[bytes] | None]


@dataclass(frozen=True)
class Fault:
    """An exception escaped from a handler, with its traceback already rendered."""

    error: Exception
    stack: str
    location: str

    @classmethod
    def capture(cls, exc: Exception) -> "Fault":
        tb = exc.__traceback__
        # The first frame is the guarding call (invoke() or stream_body()).
        if tb is not None and tb.tb_next is not None:
            tb = tb.tb_next
        frames = traceback.extract_tb(tb)
        location = f"{frames[-1].filename}:{frames[-1].lineno}" if frames else "unknown"
        stack = "".join(traceback.format_exception(type(exc), exc, tb))
        return cls(error=exc, stack=stack, location=location)

    @property
    def description(self) -> str:
        """One-line ``Type: message`` form of the error."""
        return "".join(traceback.format_exception_only(type(self.error), self.error)).strip()


@dataclass(frozen=True)
class Outcome:
    """Result of a guarded handler call: a clean return, or a Fault.

    body holds whatever iterable the handler returned, still unconsumed.
    """

    fault: Fault | None = None
    body: Iterable[bytes] | None = None

    @property
    def ok(self) -> bool:
        return self.fault is None


def invoke(handler: Handler, writer: ResponseWriter, request) -> Outcome:
    """Run a handler and turn any Exception it raises into an Outcome."""
    try:
        body = handler(writer, request)
    except Exception as exc:
        return Outcome(Fault.capture(exc))
    return Outcome(body=body)


def stream_body(body: Iterable[bytes], writer: ResponseWriter) -> Generator[None, None, Outcome]:
    """Write *body* through *writer* one chunk at a time.

    Yields after every non-empty chunk so the caller can pass it on before
    the next one is produced. An Exception raised while iterating, or by
    the body's close(), ends the stream and is returned as a Fault. close()
    is called however the stream ends.
    """
    fault = None
    try:
        for chunk in body:
            if chunk:
                writer.write(chunk)
                yield
    except Exception as exc:
        fault = Fault.capture(exc)
    finally:
        close = getattr(body, "close", None)
        if close is not None:
            try:
                close()
            except Exception as exc:
                if fault is None:
                    fault = Fault.capture(exc)
    return Outcome(fault)


class PanicGuard:
    """Converts a Fault into a 500 page and, optionally, an error report.

    stack_in_500 selects the detailed page, stack_in_log appends the stack
    trace to the error report. The two are independent.
    """

    def __init__(self, stack_in_500: bool = False, stack_in_log: bool = False,
                 errors: ErrorSink | None = None):
        self.stack_in_500 = stack_in_500
        self.stack_in_log = stack_in_log
        self.errors = errors

    def recover(self, fault: Fault, writer: ResponseWriter) -> None:
        logger.warning("Recovered from handler fault: %s [at %s]",
                       fault.description, fault.location)
        self._send_error_page(fault, writer)
        self._report(fault)

    def error_page(self, fault: Fault) -> str:
        if not self.stack_in_500:
            return ERROR_PAGE_SHORT
        return ERROR_PAGE_DETAILED.format(
            error=escape(fault.description), stack=escape(fault.stack)
        )

    def report_message(self, fault: Fault) -> str:
        msg = f"[{format_timestamp(now())}] [panic] {fault.description} [at {fault.location}]"
        if self.stack_in_log:
            msg += "\n" + fault.stack
        return msg

    def _send_error_page(self, fault: Fault, writer: ResponseWriter) -> None:
        try:
            writer.set_status(500)
            writer.write(self.error_page(fault).encode("utf-8"))
        except Exception:
            logger.debug("Could not deliver error page to client", exc_info=True)

    def _report(self, fault: Fault) -> None:
        if self.errors is None:
            return
        try:
            self.errors.submit(self.report_message(fault))
        except QueueFullError:
            logger.warning("Error report queue full, dropping report for %s", fault.location)
