"""Access log line formatters: Apache combined and a timing-oriented variant."""

from datetime import datetime
from typing import Callable

from accesslog.record import RequestRecord

# 02/Jan/2006:15:04:05 -0700, with English month names whatever the locale.
APACHE_TIME = "%d/{month}/%Y:%H:%M:%S %z"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

Formatter = Callable[[RequestRecord], str]


def format_timestamp(dt: datetime) -> str:
    return dt.strftime(APACHE_TIME.format(month=_MONTHS[dt.month - 1]))


def combined_format(rec: RequestRecord) -> str:
    """Apache Combined Log Format."""
    return (
        f'{rec.host} - {rec.indent} [{format_timestamp(rec.request_started)}] '
        f'"{rec.request}" {rec.status} {rec.bytes} '
        f'"{rec.referer}" "{rec.user_agent}"'
    )


def perf_format(rec: RequestRecord) -> str:
    """Common Log Format with the request duration in place of the headers."""
    return (
        f'{rec.host} - {rec.indent} [{format_timestamp(rec.request_started)}] '
        f'"{rec.request}" {rec.status} {rec.bytes} {rec.elapsed_ms}ms'
    )


_FORMAT_MAP: dict[str, Formatter] = {
    "combined": combined_format,
    "perf": perf_format,
}


def get_formatter(name: str) -> Formatter:
    """Look up a built-in formatter by name."""
    try:
        return _FORMAT_MAP[name]
    except KeyError:
        raise ValueError(
            f"unknown log format {name!r}, expected one of {sorted(_FORMAT_MAP)}"
        ) from None
