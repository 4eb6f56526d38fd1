"""Per-request record carried from the dispatcher to the log sinks."""

from dataclasses import dataclass
from datetime import datetime, timedelta


def parse_host(remote_addr: str) -> str:
    """Strip the port suffix at the last colon; no colon means no port."""
    n = remote_addr.rfind(":")
    if n == -1:
        return remote_addr
    return remote_addr[:n]


def now() -> datetime:
    """Local wall-clock time with its UTC offset attached."""
    return datetime.now().astimezone()


@dataclass
class RequestRecord:
    host: str
    request: str
    request_started: datetime
    request_completed: datetime | None = None
    indent: str = "-"
    status: int = 200
    bytes: int = 0
    referer: str = ""
    user_agent: str = ""

    @classmethod
    def start(cls, remote_addr: str, method: str, target: str, protocol: str,
              referer: str = "", user_agent: str = "") -> "RequestRecord":
        """Open a record for a request that is about to be handled."""
        return cls(
            host=parse_host(remote_addr),
            request=f"{method} {target} {protocol}",
            request_started=now(),
            referer=referer,
            user_agent=user_agent,
        )

    def complete(self) -> None:
        self.request_completed = now()

    @property
    def elapsed_ms(self) -> int:
        """Whole milliseconds between start and completion, truncated."""
        if self.request_completed is None:
            return 0
        micros = (self.request_completed - self.request_started) // timedelta(microseconds=1)
        # Truncate toward zero; a wall clock stepping backwards gives a negative delta.
        ms = abs(micros) // 1000
        return ms if micros >= 0 else -ms
