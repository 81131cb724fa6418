"""Span tracking and tree rendering.

Public API
----------
::

    from callspan.tracing import (
        Tracer,
        Span,
        SpanStack,
        TreeRenderer,
        MemorySink,
        StreamSink,
        FileSink,
    )
"""

from __future__ import annotations

from callspan.tracing.default import get_tracer, reset_tracer, set_tracer
from callspan.tracing.renderer import CLOSE_CORNER, OPEN_CORNER, TreeRenderer
from callspan.tracing.sinks import (
    FileSink,
    LineSink,
    MemorySink,
    StreamSink,
    sink_for,
)
from callspan.tracing.spans import Frame, SpanStack
from callspan.tracing.tracer import Span, Tracer, call_label, traced_by

__all__ = [
    # Core
    "Tracer",
    "Span",
    "traced_by",
    "call_label",
    # Stack
    "Frame",
    "SpanStack",
    # Rendering
    "TreeRenderer",
    "OPEN_CORNER",
    "CLOSE_CORNER",
    # Sinks
    "LineSink",
    "StreamSink",
    "FileSink",
    "MemorySink",
    "sink_for",
    # Default tracer
    "get_tracer",
    "set_tracer",
    "reset_tracer",
]
