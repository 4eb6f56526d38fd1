"""Line destinations that sinks write formatted log lines to."""

import logging
import os
import sys
from typing import Protocol, TextIO

logger = logging.getLogger(__name__)

FILE_MODE = 0o666


class LineDestination(Protocol):
    def write_line(self, line: str) -> None: ...


def _terminate(line: str) -> str:
    return line if line.endswith("\n") else line + "\n"


class StreamDestination:
    """Writes lines to an already-open text stream and flushes after each."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream if stream is not None else sys.stdout

    def write_line(self, line: str) -> None:
        self._stream.write(_terminate(line))
        self._stream.flush()


class FileDestination(StreamDestination):
    """Append-only log file, created on first open.

    Raises OSError immediately if the file cannot be opened so the caller
    can decide whether to run without it.
    """

    def __init__(self, path: str):
        fd = os.open(path, os.O_APPEND | os.O_CREAT | os.O_WRONLY, FILE_MODE)
        super().__init__(os.fdopen(fd, "a", encoding="utf-8"))
        self._path = path
        logger.info("Opened log file %s", path)

    @property
    def path(self) -> str:
        return self._path

    def close(self) -> None:
        self._stream.close()


class LoggerDestination:
    """Hands each line to a stdlib logger, e.g. to reuse its handlers."""

    def __init__(self, target: logging.Logger, level: int = logging.INFO):
        self._target = target
        self._level = level

    def write_line(self, line: str) -> None:
        self._target.log(self._level, "%s", line.rstrip("\n"))


def open_destination(target: str) -> LineDestination:
    """"-" means stdout; anything else is a file path."""
    if target == "-":
        return StreamDestination(sys.stdout)
    return FileDestination(target)
