"""Line sinks.

``LineSink`` is the protocol.  Three implementations ship:

* ``StreamSink`` -- any text stream; stdout by default.
* ``FileSink`` -- appends to a file, flock-ed per line.
* ``MemorySink`` -- in-memory buffer for tests.

Sinks receive complete lines, terminator included.  Serialization across
threads is the renderer's job, not the sink's.
"""

from __future__ import annotations

import fcntl
import logging
import os
import sys
from pathlib import Path
from typing import IO, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class LineSink(Protocol):
    """Destination for fully formatted text lines."""

    def write_line(self, line: str) -> None:
        """Write one complete line (terminator included)."""
        ...


# ---------------------------------------------------------------------------
# StreamSink
# ---------------------------------------------------------------------------


class StreamSink:
    """Writes to a text stream and flushes after every line.

    With no stream given, ``sys.stdout`` is looked up at write time so
    that output redirection (and pytest's ``capsys``) is honoured.
    """

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> IO[str]:
        return self._stream if self._stream is not None else sys.stdout

    def write_line(self, line: str) -> None:
        stream = self.stream
        stream.write(line)
        stream.flush()


# ---------------------------------------------------------------------------
# FileSink
# ---------------------------------------------------------------------------


class FileSink:
    """Appends lines to a file.

    * The file is opened lazily on the first write.
    * ``fcntl.LOCK_EX`` is held for each line so that several processes
      tracing into the same file never interleave partial lines.
    * Every line is flushed; pass ``fsync=True`` to also force it to disk.
    * The caller owns the lifetime: call :meth:`close` (or use the sink
      as a context manager) when done.
    """

    def __init__(
        self, path: str | Path, *, truncate: bool = False, fsync: bool = False
    ) -> None:
        self._path = Path(path)
        self._truncate = truncate
        self._fsync = fsync
        self._file: IO[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _open(self) -> IO[str]:
        if self._file is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(
                self._path, "w" if self._truncate else "a", encoding="utf-8"
            )
            logger.debug("FileSink opened %s", self._path)
        return self._file

    def write_line(self, line: str) -> None:
        f = self._open()
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        try:
            f.write(line)
            f.flush()
            if self._fsync:
                os.fsync(f.fileno())
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> FileSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# MemorySink  (tests)
# ---------------------------------------------------------------------------


class MemorySink:
    """In-memory implementation -- no persistence, no dependencies."""

    def __init__(self) -> None:
        self._chunks: list[str] = []

    def write_line(self, line: str) -> None:
        self._chunks.append(line)

    @property
    def text(self) -> str:
        """Everything written so far, exactly as received."""
        return "".join(self._chunks)

    @property
    def lines(self) -> list[str]:
        """Written lines without terminators."""
        return self.text.splitlines()

    def clear(self) -> None:
        self._chunks.clear()

    def __len__(self) -> int:
        return len(self._chunks)


def sink_for(output: str) -> LineSink:
    """Resolve a settings ``output`` value to a sink.

    ``"stdout"`` and ``"stderr"`` select the process streams; anything
    else is taken as a file path.
    """
    if output == "stdout":
        return StreamSink()
    if output == "stderr":
        return StreamSink(sys.stderr)
    return FileSink(output)
