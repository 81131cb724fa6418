"""callspan -- call-stack visualizer.

Renders nested spans as a tree of box-drawing lines, one line per
entered (and optionally exited) span::

    from callspan import Tracer, MemorySink, RenderConfig, CloseMode

    tracer = Tracer(MemorySink(), RenderConfig(close_mode=CloseMode.LABEL))
    with tracer.span("A"):
        with tracer.span("B"):
            pass

    # ┌A
    # | ┌B
    # | └B
    # └A
"""

from __future__ import annotations

from callspan.core.config import RenderConfig, Settings, load_settings
from callspan.core.enums import CloseMode, Level
from callspan.core.errors import (
    CallspanError,
    ConfigError,
    OutputFailureError,
    StackCorruptionError,
)
from callspan.tracing import (
    FileSink,
    LineSink,
    MemorySink,
    Span,
    StreamSink,
    Tracer,
    get_tracer,
    reset_tracer,
    set_tracer,
)
from callspan.tracing.default import span, traced

__version__ = "0.3.0"

__all__ = [
    "Tracer",
    "Span",
    "span",
    "traced",
    "RenderConfig",
    "Settings",
    "load_settings",
    "CloseMode",
    "Level",
    "LineSink",
    "StreamSink",
    "FileSink",
    "MemorySink",
    "get_tracer",
    "set_tracer",
    "reset_tracer",
    "CallspanError",
    "ConfigError",
    "StackCorruptionError",
    "OutputFailureError",
]
