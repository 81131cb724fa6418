"""Recursive Fibonacci, one span per call."""

from __future__ import annotations

from callspan.tracing.tracer import Tracer


def fib(tracer: Tracer, n: int) -> int:
    with tracer.span("fib({})", n):
        if n == 0:
            return 0
        if n <= 2:
            return 1
        return fib(tracer, n - 1) + fib(tracer, n - 2)
