"""Tracer: scoped spans over a per-context stack and a shared renderer.

Usage::

    tracer = Tracer(MemorySink(), RenderConfig(close_mode=CloseMode.LABEL))

    def fib(n):
        with tracer.span("fib({})", n):
            return n if n < 2 else fib(n - 1) + fib(n - 2)

    @tracer.traced
    def parse(tokens): ...

A span is released exactly once on every exit path of its ``with`` block,
including exceptions.  Stack mutation and line emission are separate
steps: a failing sink never leaves the stack inconsistent.

Stacks are per execution context: each thread and each asyncio task
sees its own nesting path, so coroutines traced with ``@traced`` may run
concurrently under ``asyncio.gather``.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable, ParamSpec, TypeVar

from callspan.core.config import RenderConfig
from callspan.core.enums import Level, SpanEvent
from callspan.core.errors import OutputFailureError, StackCorruptionError
from callspan.tracing.renderer import TreeRenderer
from callspan.tracing.sinks import LineSink, StreamSink
from callspan.tracing.spans import Frame, SpanStack

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_REPR_LIMIT = 40


class Span:
    """Handle for one acquired span.

    Inert when its level is below the tracer's threshold: nothing was
    pushed and :meth:`close` does nothing.
    """

    def __init__(self, tracer: Tracer, frame: Frame | None) -> None:
        self._tracer = tracer
        self._frame = frame
        self._closed = False

    @property
    def frame(self) -> Frame | None:
        return self._frame

    @property
    def active(self) -> bool:
        return self._frame is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the span.

        Raises:
            StackCorruptionError: If already released, or not the top of
                the calling context's stack.
            OutputFailureError: If the close line could not be written.
        """
        self._release(unwinding=False)

    def _release(self, unwinding: bool) -> None:
        if self._closed:
            raise StackCorruptionError("span released more than once")
        if self._frame is None:
            self._closed = True
            return
        try:
            self._tracer._close(self._frame, unwinding=unwinding)
        except OutputFailureError:
            # The frame was popped before the write failed
            self._closed = True
            raise
        self._closed = True

    def __enter__(self) -> Span:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, *_: object) -> None:
        self._release(unwinding=exc_type is not None)

    def __repr__(self) -> str:
        if self._frame is None:
            return "Span(inert)"
        return f"Span(depth={self._frame.depth}, label={self._frame.label!r})"


class Tracer:
    """Span generator bound to one sink and one render configuration.

    Parameters
    ----------
    sink:
        Line destination.  Defaults to stdout.
    config:
        Rendering parameters.  Defaults to ``RenderConfig()``.
    raise_on_output_error:
        When ``False``, sink failures are logged and swallowed instead of
        raised as :class:`OutputFailureError`.
    """

    def __init__(
        self,
        sink: LineSink | None = None,
        config: RenderConfig | None = None,
        *,
        raise_on_output_error: bool = True,
    ) -> None:
        self._renderer = TreeRenderer(
            sink if sink is not None else StreamSink(), config
        )
        self._stack = SpanStack()
        self._raise_on_output_error = raise_on_output_error

    @property
    def config(self) -> RenderConfig:
        return self._renderer.config

    @property
    def sink(self) -> LineSink:
        return self._renderer.sink

    @property
    def renderer(self) -> TreeRenderer:
        return self._renderer

    @property
    def depth(self) -> int:
        """Number of open spans in the calling context."""
        return self._stack.depth

    def frames(self) -> tuple[Frame, ...]:
        """Snapshot of the calling context's open frames, outermost first."""
        return self._stack.frames()

    @property
    def stack(self) -> SpanStack:
        return self._stack

    # -- public API ---------------------------------------------------------

    def span(self, label: str, *args: Any, level: Level = Level.INFO) -> Span:
        """Acquire a span for use in a ``with`` block.

        With *args*, the label is ``label.format(*args)``, built only if
        the span passes the level threshold.
        """
        return self.enter(label, *args, level=level)

    def enter(self, label: str, *args: Any, level: Level = Level.INFO) -> Span:
        """Acquire a span; the caller must :meth:`Span.close` it."""
        level = Level.parse(level)
        if level < self.config.level:
            return Span(self, None)
        if args:
            label = label.format(*args)
        return Span(self, self._open(label, level))

    def traced(
        self,
        func: Callable[P, T] | None = None,
        *,
        label: str | Callable[..., str] | None = None,
        level: Level = Level.INFO,
    ) -> Callable[P, T] | Callable[[Callable[P, T]], Callable[P, T]]:
        """Decorator that wraps every call of a function in a span.

        Can be used with or without arguments::

            @tracer.traced
            def fib(n): ...

            @tracer.traced(label=lambda n: f"fib({n})", level=Level.DEBUG)
            def fib(n): ...

        Args:
            func: The function to decorate (when used without parentheses).
            label: Fixed label, or a callable receiving the call's arguments.
                Defaults to ``name(arg reprs)``.
            level: Span level for every call.
        """
        return traced_by(lambda: self, func, label=label, level=level)

    # -- internals ----------------------------------------------------------

    def _open(self, label: str, level: Level) -> Frame:
        stack = self._stack
        frame = stack.open(label, level)
        try:
            self._renderer.render(SpanEvent.OPEN, frame, stack.ancestors(frame))
        except OutputFailureError:
            if self._raise_on_output_error:
                # The span never opened: undo the push without drawing a close
                stack.close(frame)
                raise
            logger.warning("Open line for %r not written", label, exc_info=True)
        return frame

    def _close(self, frame: Frame, *, unwinding: bool) -> None:
        stack = self._stack
        line = None
        if stack.top is frame:
            line = self._renderer.format(
                SpanEvent.CLOSE, frame, stack.ancestors(frame)
            )
        stack.close(frame)
        if line is None:
            return
        try:
            self._renderer.emit(line)
        except OutputFailureError:
            if self._raise_on_output_error and not unwinding:
                raise
            logger.warning(
                "Close line for %r not written", frame.label, exc_info=True
            )


def call_label(name: str, args: tuple, kwargs: dict) -> str:
    """Default label of a traced call: ``name(1, 'x', key=2)``."""
    parts = [_short_repr(a) for a in args]
    parts.extend(f"{k}={_short_repr(v)}" for k, v in kwargs.items())
    return f"{name}({', '.join(parts)})"


def _short_repr(value: object) -> str:
    text = repr(value)
    if len(text) > _REPR_LIMIT:
        text = text[: _REPR_LIMIT - 3] + "..."
    return text


def traced_by(
    resolve: Callable[[], Tracer],
    func: Callable[P, T] | None = None,
    *,
    label: str | Callable[..., str] | None = None,
    level: Level = Level.INFO,
) -> Callable[P, T] | Callable[[Callable[P, T]], Callable[P, T]]:
    """Build a span-wrapping decorator; *resolve* picks the tracer per call.

    The label is built only for calls that pass the tracer's level
    threshold.
    """
    span_level = Level.parse(level)

    def decorator(fn: Callable[P, T]) -> Callable[P, T]:
        def open_span(args: tuple, kwargs: dict) -> Span:
            tracer = resolve()
            if span_level < tracer.config.level:
                return Span(tracer, None)
            if label is None:
                text = call_label(fn.__name__, args, kwargs)
            elif callable(label):
                text = label(*args, **kwargs)
            else:
                text = label
            return tracer.span(text, level=span_level)

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                with open_span(args, kwargs):
                    return await fn(*args, **kwargs)

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with open_span(args, kwargs):
                return fn(*args, **kwargs)

        return sync_wrapper

    # Handle both @traced and @traced() syntax
    if func is not None:
        return decorator(func)
    return decorator
