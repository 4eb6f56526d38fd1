"""Pass-through response writer that tallies bytes and status for logging."""

from typing import MutableMapping, Protocol

from accesslog.record import RequestRecord


class ResponseWriter(Protocol):
    """What a transport binding has to offer a handler."""

    @property
    def headers(self) -> MutableMapping: ...

    def write(self, data: bytes) -> int: ...

    def set_status(self, code: int) -> None: ...


class TimedResponseRecorder:
    """Wraps a ResponseWriter and mirrors its writes into a RequestRecord.

    Bytes and status codes are forwarded untouched; the record is the only
    side channel.
    """

    def __init__(self, writer: ResponseWriter, record: RequestRecord):
        self._writer = writer
        self._record = record

    @property
    def record(self) -> RequestRecord:
        return self._record

    @property
    def headers(self) -> MutableMapping:
        return self._writer.headers

    def write(self, data: bytes) -> int:
        n = self._writer.write(data)
        self._record.bytes += n
        return n

    def set_status(self, code: int) -> None:
        self._record.status = code
        self._writer.set_status(code)
