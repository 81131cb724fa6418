"""Tree renderer: turns span open/close events into box-drawing lines.

Column ``i`` of a line belongs to the frame at depth ``i``.  The acting
frame's column carries a corner (``┌`` on open, ``└`` on close); every
ancestor column carries a pass-through glyph picked by ``i % len(glyphs)``
so that sibling subtrees reaching the same depth stay distinguishable::

    ┌parse
    | ┌term
    | ¦ ┌factor
    | ¦ └factor
    | └term
    └parse

Formatting is pure; only :meth:`TreeRenderer.emit` touches the sink, one
locked write per line.
"""

from __future__ import annotations

import threading
from typing import Sequence

from callspan.core.config import RenderConfig
from callspan.core.enums import CloseMode, SpanEvent
from callspan.core.errors import OutputFailureError
from callspan.tracing.sinks import LineSink
from callspan.tracing.spans import Frame

OPEN_CORNER = "┌"
CLOSE_CORNER = "└"


class TreeRenderer:
    """Formats span events and writes them to a shared line sink.

    Parameters
    ----------
    sink:
        Destination for complete lines.
    config:
        Rendering parameters.
    """

    def __init__(self, sink: LineSink, config: RenderConfig | None = None) -> None:
        self._sink = sink
        self._config = config if config is not None else RenderConfig()
        self._lock = threading.Lock()
        self._lines_written: int = 0

    @property
    def config(self) -> RenderConfig:
        return self._config

    @property
    def sink(self) -> LineSink:
        return self._sink

    @property
    def lines_written(self) -> int:
        return self._lines_written

    # -- formatting ---------------------------------------------------------

    def format(
        self,
        event: SpanEvent,
        frame: Frame,
        ancestors: Sequence[Frame],
    ) -> str | None:
        """Return the line for *event* on *frame*, or ``None`` if suppressed.

        *ancestors* are the frames at depths ``0 .. frame.depth - 1`` as they
        stand while *frame* is still open.
        """
        cfg = self._config
        depth = frame.depth
        if depth < cfg.skip:
            return None

        if event is SpanEvent.CLOSE:
            if cfg.close_mode is CloseMode.NONE and depth != cfg.skip:
                return None
            if cfg.close_mode is not CloseMode.LABEL and not cfg.is_marked(depth):
                return None

        parts = [self._indent(depth, ancestors)]
        corner = OPEN_CORNER if event is SpanEvent.OPEN else CLOSE_CORNER
        parts.append(corner if cfg.is_marked(depth) else " ")
        if event is SpanEvent.OPEN or cfg.close_mode is CloseMode.LABEL:
            parts.append(frame.label)
        parts.append("\n")
        return "".join(parts)

    def _indent(self, depth: int, ancestors: Sequence[Frame]) -> str:
        cfg = self._config
        pad = " " * (cfg.tabwidth - 1)
        columns = []
        for i in range(cfg.skip, depth):
            if cfg.is_marked(i) and ancestors[i].has_open_child:
                columns.append(cfg.glyph_for(i))
            else:
                columns.append(" ")
            columns.append(pad)
        return "".join(columns)

    # -- output -------------------------------------------------------------

    def emit(self, line: str) -> None:
        """Write one complete line to the sink under the sink lock.

        Raises:
            OutputFailureError: If the sink raised while writing.
        """
        with self._lock:
            try:
                self._sink.write_line(line)
            except Exception as exc:
                raise OutputFailureError(
                    f"line sink {type(self._sink).__name__} failed: {exc}"
                ) from exc
            self._lines_written += 1

    def render(
        self,
        event: SpanEvent,
        frame: Frame,
        ancestors: Sequence[Frame],
    ) -> str | None:
        """Format and emit in one step.  Returns the line written, if any."""
        line = self.format(event, frame, ancestors)
        if line is not None:
            self.emit(line)
        return line
