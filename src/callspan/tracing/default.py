"""Process-wide default tracer.

Built lazily from :class:`~callspan.core.config.Settings` on first use
(so ``CALLSPAN_*`` environment variables apply), or injected with
:func:`set_tracer`.  Tests call :func:`reset_tracer` to start clean.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from callspan.core.config import Settings
from callspan.core.enums import Level
from callspan.tracing.sinks import sink_for
from callspan.tracing.tracer import Span, Tracer, traced_by

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton (set via ``set_tracer`` or built by ``get_tracer``)
# ---------------------------------------------------------------------------
_tracer: Tracer | None = None
_init_lock = threading.Lock()


def tracer_from_settings(settings: Settings) -> Tracer:
    """Create a tracer wired to the sink and rendering named in *settings*."""
    return Tracer(
        sink_for(settings.output),
        settings.render_config(),
        raise_on_output_error=settings.raise_on_output_error,
    )


def get_tracer() -> Tracer:
    """Return the default tracer, creating it on first call."""
    global _tracer  # noqa: PLW0603

    tracer = _tracer
    if tracer is not None:
        return tracer
    with _init_lock:
        if _tracer is None:
            settings = Settings()
            _tracer = tracer_from_settings(settings)
            logger.info(
                "Default tracer initialised (output=%s, skip=%d, close_mode=%s)",
                settings.output,
                settings.skip,
                settings.close_mode.value,
            )
        return _tracer


def set_tracer(tracer: Tracer) -> Tracer | None:
    """Install *tracer* as the default.  Returns the one it replaced."""
    global _tracer  # noqa: PLW0603

    with _init_lock:
        previous, _tracer = _tracer, tracer
    return previous


def reset_tracer() -> None:
    """Forget the default tracer; the next :func:`get_tracer` rebuilds it."""
    global _tracer  # noqa: PLW0603

    with _init_lock:
        _tracer = None


def span(label: str, *args: Any, level: Level = Level.INFO) -> Span:
    """``get_tracer().span(...)``."""
    return get_tracer().span(label, *args, level=level)


def traced(
    func: Callable | None = None,
    *,
    label: str | Callable[..., str] | None = None,
    level: Level = Level.INFO,
) -> Callable:
    """Decorator tracing through the default tracer.

    The tracer is looked up per call, so a tracer installed after
    decoration (e.g. by a test) still receives the spans.
    """
    return traced_by(get_tracer, func, label=label, level=level)
