"""WSGI binding: Werkzeug request/response on one side, ResponseWriter on the other."""

from typing import Callable, Iterable
from urllib.parse import quote

from werkzeug.datastructures import Headers
from werkzeug.http import HTTP_STATUS_CODES
from werkzeug.wrappers import Request

from accesslog.record import RequestRecord

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

DEFAULT_CONTENT_TYPE = "text/html; charset=utf-8"


class ResponseStream:
    """ResponseWriter that hands the body to a WSGI server as it is produced.

    Writes collect until drain() takes them. The first drain() that returns
    bytes calls start_response with the status and headers held so far;
    after that a status change only reaches the access log.
    """

    def __init__(self, start_response: Callable):
        self.status = 200
        self.headers_sent = False
        self._start_response = start_response
        self._headers = Headers()
        self._pending: list[bytes] = []

    @property
    def headers(self) -> Headers:
        return self._headers

    def write(self, data: bytes) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        if data:
            self._pending.append(bytes(data))
        return len(data)

    def set_status(self, code: int) -> None:
        self.status = code

    def drain(self, final: bool = False) -> list[bytes]:
        """Take the pending chunks, sending status and headers first if still held.

        With *final* set the headers go out even for an empty body, and the
        body length is known, so Content-Length is filled in when missing.
        """
        if not self._pending and not final:
            return []
        if not self.headers_sent:
            self._send_headers(final)
        chunks, self._pending = self._pending, []
        return chunks

    def _send_headers(self, final: bool) -> None:
        headers = Headers(self._headers)
        if "Content-Type" not in headers:
            headers["Content-Type"] = DEFAULT_CONTENT_TYPE
        if final and "Content-Length" not in headers:
            headers["Content-Length"] = str(sum(len(c) for c in self._pending))
        reason = HTTP_STATUS_CODES.get(self.status, "UNKNOWN")
        self._start_response(f"{self.status} {reason}", headers.to_wsgi_list())
        self.headers_sent = True


def remote_address(environ: dict) -> str:
    """``host:port`` when the server reports a port, the bare host otherwise."""
    addr = environ.get("REMOTE_ADDR", "")
    port = environ.get("REMOTE_PORT")
    if port:
        return f"{addr}:{port}"
    return addr


def request_target(environ: dict) -> str:
    """The request target as the client sent it, query string included."""
    raw = environ.get("REQUEST_URI") or environ.get("RAW_URI")
    if raw:
        return raw
    path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    target = quote(path, safe="/;=,@:!$&'()*+~", encoding="latin-1") or "/"
    query = environ.get("QUERY_STRING", "")
    if query:
        target += "?" + query
    return target


def start_record(request: Request) -> RequestRecord:
    environ = request.environ
    return RequestRecord.start(
        remote_addr=remote_address(environ),
        method=request.method,
        target=request_target(environ),
        protocol=environ.get("SERVER_PROTOCOL", "HTTP/1.0"),
        referer=request.headers.get("Referer", ""),
        user_agent=request.headers.get("User-Agent", ""),
    )


def wsgi_handler(app: WSGIApp):
    """Adapt a WSGI application (a Flask app's wsgi_app, say) into a handler.

    The application's result is returned unconsumed; the dispatcher streams
    it through the writer and closes it.
    """

    def handler(writer, request: Request) -> Iterable[bytes]:
        add_header = getattr(writer.headers, "add", writer.headers.__setitem__)

        def start_response(status: str, headers: list, exc_info=None):
            if exc_info is not None:
                writer.headers.clear()
            writer.set_status(int(status.split(" ", 1)[0]))
            for key, value in headers:
                add_header(key, value)
            return writer.write

        return app(request.environ, start_response)

    return handler
