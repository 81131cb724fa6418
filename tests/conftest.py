"""Shared fixtures for the callspan test suite."""

from __future__ import annotations

import logging

import pytest

from callspan.core.config import RenderConfig
from callspan.core.enums import CloseMode
from callspan.tracing import default as default_tracer
from callspan.tracing.sinks import MemorySink
from callspan.tracing.tracer import Tracer


# ---------------------------------------------------------------------------
# Sinks and tracers
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_sink() -> MemorySink:
    """Return an empty in-memory line sink."""
    return MemorySink()


@pytest.fixture
def make_tracer(memory_sink):
    """Factory: ``make_tracer(**render_fields)`` -> Tracer on ``memory_sink``."""

    def _make(sink=None, raise_on_output_error: bool = True, **fields) -> Tracer:
        return Tracer(
            sink if sink is not None else memory_sink,
            RenderConfig(**fields),
            raise_on_output_error=raise_on_output_error,
        )

    return _make


@pytest.fixture
def label_tracer(make_tracer) -> Tracer:
    """Tracer that repeats the label on close (the most verbose mode)."""
    return make_tracer(close_mode=CloseMode.LABEL)


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_default_tracer():
    """Every test starts without a process-wide default tracer."""
    default_tracer.reset_tracer()
    yield
    default_tracer.reset_tracer()


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """``setup_logging`` (run by the CLI) replaces root handlers; undo it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
