"""Unit tests for Tracer and Span: scoping, failures, levels, decorator."""

from __future__ import annotations

import asyncio
import threading

import pytest

from callspan.core.config import RenderConfig
from callspan.core.enums import CloseMode, Level
from callspan.core.errors import OutputFailureError, StackCorruptionError
from callspan.tracing.sinks import MemorySink, StreamSink
from callspan.tracing.tracer import Tracer, call_label


class FlakySink:
    """Accepts the first ``ok`` lines, then fails every write."""

    def __init__(self, ok: int) -> None:
        self.ok = ok
        self.lines: list[str] = []

    def write_line(self, line: str) -> None:
        if len(self.lines) >= self.ok:
            raise BrokenPipeError("reader went away")
        self.lines.append(line)


class TestNestingScenario:
    def test_sibling_spans_under_one_parent(self, label_tracer, memory_sink):
        with label_tracer.span("A"):
            with label_tracer.span("B"):
                pass
            with label_tracer.span("C"):
                pass

        assert memory_sink.text == (
            "┌A\n"
            "| ┌B\n"
            "| └B\n"
            "| ┌C\n"
            "| └C\n"
            "└A\n"
        )

    def test_corner_mode(self, make_tracer, memory_sink):
        tracer = make_tracer(close_mode=CloseMode.CORNER)
        with tracer.span("A"):
            with tracer.span("B"):
                pass
        assert memory_sink.lines == ["┌A", "| ┌B", "| └", "└"]

    def test_default_mode_only_closes_root(self, make_tracer, memory_sink):
        tracer = make_tracer()
        with tracer.span("A"):
            with tracer.span("B"):
                with tracer.span("C"):
                    pass
            with tracer.span("D"):
                pass
        assert memory_sink.lines == ["┌A", "| ┌B", "| ¦ ┌C", "| ┌D", "└"]

    def test_skip_hides_outer_frames(self, make_tracer, memory_sink):
        tracer = make_tracer(skip=1, close_mode=CloseMode.LABEL)
        with tracer.span("A"):
            with tracer.span("B"):
                with tracer.span("C"):
                    pass
        assert memory_sink.lines == ["┌B", "¦ ┌C", "¦ └C", "└B"]

    def test_recursion_every_second_column(self, make_tracer, memory_sink):
        tracer = make_tracer(every=2, close_mode=CloseMode.LABEL)

        def helper(current: int, target: int) -> None:
            with tracer.span("Span({})", current):
                if current < target:
                    helper(current + 1, target)

        helper(0, 5)
        assert memory_sink.text == (
            "┌Span(0)\n"
            "|  Span(1)\n"
            "|   ┌Span(2)\n"
            "|   ┆  Span(3)\n"
            "|   ┆   ┌Span(4)\n"
            "|   ┆   |  Span(5)\n"
            "|   ┆   |  Span(5)\n"
            "|   ┆   └Span(4)\n"
            "|   ┆  Span(3)\n"
            "|   └Span(2)\n"
            "|  Span(1)\n"
            "└Span(0)\n"
        )

    def test_depth_tracks_open_spans(self, label_tracer):
        assert label_tracer.depth == 0
        with label_tracer.span("A"):
            assert label_tracer.depth == 1
            with label_tracer.span("B") as b:
                assert label_tracer.depth == 2
                assert b.frame.depth == 1
                assert [f.label for f in label_tracer.frames()] == ["A", "B"]
        assert label_tracer.depth == 0
        assert label_tracer.stack.top is None


class TestFormatArgs:
    def test_args_are_formatted_into_label(self, label_tracer, memory_sink):
        with label_tracer.span("fib({}) at {}", 5, "12:21"):
            pass
        assert memory_sink.lines[0] == "┌fib(5) at 12:21"

    def test_label_without_args_is_verbatim(self, label_tracer, memory_sink):
        with label_tracer.span("Span({current_depth})"):
            pass
        assert memory_sink.lines[0] == "┌Span({current_depth})"


class TestUnwindSafety:
    def test_exception_releases_every_span(self, label_tracer, memory_sink):
        def boom() -> None:
            with label_tracer.span("inner"):
                raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            with label_tracer.span("outer"):
                boom()

        assert label_tracer.depth == 0
        assert memory_sink.lines == ["┌outer", "| ┌inner", "| └inner", "└outer"]

    def test_early_return_releases_span(self, label_tracer):
        def find(items: list[int], target: int) -> int:
            with label_tracer.span("find({})", target):
                for i, item in enumerate(items):
                    if item == target:
                        return i
                return -1

        assert find([1, 2, 3], 2) == 1
        assert label_tracer.depth == 0

    def test_tracer_usable_after_exception(self, label_tracer, memory_sink):
        with pytest.raises(RuntimeError):
            with label_tracer.span("A"):
                raise RuntimeError
        memory_sink.clear()
        with label_tracer.span("B"):
            pass
        assert memory_sink.lines == ["┌B", "└B"]


class TestManualRelease:
    def test_enter_and_close(self, label_tracer, memory_sink):
        span = label_tracer.enter("A")
        assert label_tracer.depth == 1
        span.close()
        assert span.closed
        assert label_tracer.depth == 0
        assert memory_sink.lines == ["┌A", "└A"]

    def test_out_of_order_release_raises(self, label_tracer):
        a = label_tracer.enter("A")
        b = label_tracer.enter("B")
        with pytest.raises(StackCorruptionError):
            a.close()
        assert not a.closed
        b.close()
        a.close()
        assert label_tracer.depth == 0

    def test_double_release_raises(self, label_tracer):
        a = label_tracer.enter("A")
        a.close()
        with pytest.raises(StackCorruptionError, match="more than once"):
            a.close()

    def test_release_on_another_thread_raises(self, label_tracer):
        span = label_tracer.enter("A")
        errors: list[BaseException] = []

        def release() -> None:
            try:
                span.close()
            except StackCorruptionError as exc:
                errors.append(exc)

        t = threading.Thread(target=release)
        t.start()
        t.join()

        assert len(errors) == 1
        assert label_tracer.depth == 1
        span.close()

    def test_failed_release_writes_no_close_line(self, label_tracer, memory_sink):
        a = label_tracer.enter("A")
        label_tracer.enter("B")
        with pytest.raises(StackCorruptionError):
            a.close()
        assert memory_sink.lines == ["┌A", "| ┌B"]

    def test_repr(self, label_tracer):
        with label_tracer.span("A") as span:
            assert repr(span) == "Span(depth=0, label='A')"


class TestLevels:
    def test_span_below_threshold_is_inert(self, make_tracer, memory_sink):
        tracer = make_tracer(level=Level.INFO, close_mode=CloseMode.LABEL)
        with tracer.span("quiet", level=Level.DEBUG) as span:
            assert not span.active
            assert tracer.depth == 0
        assert memory_sink.text == ""

    def test_filtered_span_does_not_add_depth(self, make_tracer, memory_sink):
        tracer = make_tracer(level=Level.INFO, close_mode=CloseMode.LABEL)
        with tracer.span("A"):
            with tracer.span("hidden", level=Level.TRACE):
                with tracer.span("B", level=Level.ERROR):
                    pass
        assert memory_sink.lines == ["┌A", "| ┌B", "| └B", "└A"]

    def test_label_not_formatted_when_filtered(self, make_tracer):
        class Explosive:
            def __format__(self, spec: str) -> str:
                raise AssertionError("formatted a filtered label")

        tracer = make_tracer(level=Level.WARN)
        with tracer.span("value={}", Explosive(), level=Level.DEBUG):
            pass

    def test_level_accepts_names(self, make_tracer, memory_sink):
        tracer = make_tracer(level="warn")
        with tracer.span("A", level="info"):
            pass
        with tracer.span("B", level="error"):
            pass
        assert memory_sink.lines == ["┌B", "└"]

    def test_inert_span_double_release_raises(self, make_tracer):
        tracer = make_tracer(level=Level.ERROR)
        span = tracer.enter("A")
        span.close()
        with pytest.raises(StackCorruptionError):
            span.close()


class TestOutputFailure:
    def test_open_failure_raises_and_rolls_back(self, make_tracer):
        tracer = make_tracer(sink=FlakySink(ok=0))
        with pytest.raises(OutputFailureError) as info:
            with tracer.span("A"):
                pytest.fail("body must not run when the span failed to open")
        assert isinstance(info.value.__cause__, BrokenPipeError)
        assert tracer.depth == 0

    def test_nested_open_failure_restores_parent(self, make_tracer):
        sink = FlakySink(ok=1)
        tracer = make_tracer(sink=sink, close_mode=CloseMode.LABEL)
        outer = tracer.enter("A")
        with pytest.raises(OutputFailureError):
            tracer.enter("B")
        assert tracer.depth == 1
        assert outer.frame.has_open_child is False

    def test_close_failure_raises_after_pop(self, make_tracer):
        sink = FlakySink(ok=1)
        tracer = make_tracer(sink=sink, close_mode=CloseMode.LABEL)
        span = tracer.enter("A")
        with pytest.raises(OutputFailureError):
            span.close()
        assert span.closed
        assert tracer.depth == 0

    def test_close_failure_during_unwind_keeps_original_error(self, make_tracer, caplog):
        sink = FlakySink(ok=1)
        tracer = make_tracer(sink=sink, close_mode=CloseMode.LABEL)
        with caplog.at_level("WARNING", logger="callspan.tracing.tracer"):
            with pytest.raises(KeyError):
                with tracer.span("A"):
                    raise KeyError("original")
        assert tracer.depth == 0
        assert "Close line for 'A' not written" in caplog.text

    def test_failures_swallowed_when_configured(self, make_tracer, caplog):
        tracer = make_tracer(
            sink=FlakySink(ok=0),
            raise_on_output_error=False,
            close_mode=CloseMode.LABEL,
        )
        with caplog.at_level("WARNING", logger="callspan.tracing.tracer"):
            with tracer.span("A"):
                assert tracer.depth == 1
                with tracer.span("B"):
                    assert tracer.depth == 2
        assert tracer.depth == 0
        assert caplog.text.count("not written") == 4


class TestConcurrency:
    def test_threads_never_see_each_others_depth(self, label_tracer, memory_sink):
        n_threads, nesting = 8, 6
        barrier = threading.Barrier(n_threads)
        observed: dict[int, list[int]] = {}

        def work(tid: int) -> None:
            depths: list[int] = []

            def descend(level: int) -> None:
                with label_tracer.span("t{}-{}", tid, level):
                    depths.append(label_tracer.depth)
                    if level == 0:
                        barrier.wait()
                    if level + 1 < nesting:
                        descend(level + 1)

            descend(0)
            observed[tid] = depths

        threads = [threading.Thread(target=work, args=(i,)) for i in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for tid in range(n_threads):
            assert observed[tid] == list(range(1, nesting + 1))
        assert len(memory_sink.lines) == n_threads * nesting * 2

    def test_lines_are_never_split(self, make_tracer):
        class CharByCharSink:
            """Writes one character at a time to expose interleaving."""

            def __init__(self) -> None:
                self.chars: list[str] = []

            def write_line(self, line: str) -> None:
                for ch in line:
                    self.chars.append(ch)

        sink = CharByCharSink()
        tracer = make_tracer(sink=sink, close_mode=CloseMode.LABEL)
        n_threads = 10

        def work(tid: int) -> None:
            for _ in range(20):
                with tracer.span("thread-{}", tid):
                    with tracer.span("thread-{}-child", tid):
                        pass

        threads = [threading.Thread(target=work, args=(i,)) for i in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        valid = set()
        for tid in range(n_threads):
            valid |= {
                f"┌thread-{tid}",
                f"└thread-{tid}",
                f"| ┌thread-{tid}-child",
                f"| └thread-{tid}-child",
            }
        lines = "".join(sink.chars).splitlines()
        assert len(lines) == n_threads * 20 * 4
        assert set(lines) <= valid


class TestTraced:
    def test_default_label_uses_argument_reprs(self, label_tracer, memory_sink):
        @label_tracer.traced
        def greet(name, punctuation="!"):
            return name + punctuation

        assert greet("bob", punctuation="?") == "bob?"
        assert memory_sink.lines == [
            "┌greet('bob', punctuation='?')",
            "└greet('bob', punctuation='?')",
        ]

    def test_label_callable_and_recursion(self, label_tracer, memory_sink):
        @label_tracer.traced(label=lambda n: f"fib({n})")
        def fib(n: int) -> int:
            return n if n < 2 else fib(n - 1) + fib(n - 2)

        assert fib(2) == 1
        assert memory_sink.lines == [
            "┌fib(2)",
            "| ┌fib(1)",
            "| └fib(1)",
            "| ┌fib(0)",
            "| └fib(0)",
            "└fib(2)",
        ]

    def test_fixed_label_and_level(self, make_tracer, memory_sink):
        tracer = make_tracer(level=Level.INFO)

        @tracer.traced(label="noisy", level=Level.DEBUG)
        def noisy() -> int:
            return 1

        assert noisy() == 1
        assert memory_sink.text == ""

    def test_label_callable_skipped_when_filtered(self, make_tracer, memory_sink):
        tracer = make_tracer(level=Level.ERROR)
        calls: list[int] = []

        @tracer.traced(label=lambda n: calls.append(n) or f"f({n})", level=Level.DEBUG)
        def f(n: int) -> int:
            return n

        assert f(1) == 1
        assert calls == []
        assert memory_sink.text == ""

    def test_argument_reprs_skipped_when_filtered(self, make_tracer):
        class NoRepr:
            def __repr__(self) -> str:
                raise AssertionError("repr of a filtered call")

        tracer = make_tracer(level=Level.WARN)

        @tracer.traced(level="debug")
        def f(value: object) -> None:
            return None

        f(NoRepr())

    def test_wraps_preserves_metadata(self, label_tracer):
        @label_tracer.traced
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."

    def test_exception_propagates_and_releases(self, label_tracer):
        @label_tracer.traced
        def fails():
            raise LookupError("missing")

        with pytest.raises(LookupError):
            fails()
        assert label_tracer.depth == 0

    @pytest.mark.asyncio
    async def test_async_functions(self, label_tracer, memory_sink):
        @label_tracer.traced
        async def leaf(x):
            return x * 2

        @label_tracer.traced
        async def root(x):
            return await leaf(x) + 1

        assert await root(3) == 7
        assert memory_sink.lines == [
            "┌root(3)",
            "| ┌leaf(3)",
            "| └leaf(3)",
            "└root(3)",
        ]

    @pytest.mark.asyncio
    async def test_gathered_coroutines_keep_separate_paths(
        self, label_tracer, memory_sink
    ):
        @label_tracer.traced
        async def work(x):
            await asyncio.sleep(0)
            return x

        with label_tracer.span("root") as root:
            assert await asyncio.gather(work(1), work(2)) == [1, 2]
            assert label_tracer.depth == 1
            assert root.frame.has_open_child is False

        assert label_tracer.depth == 0
        assert memory_sink.lines == [
            "┌root",
            "| ┌work(1)",
            "| ┌work(2)",
            "| └work(1)",
            "| └work(2)",
            "└root",
        ]

    @pytest.mark.asyncio
    async def test_gathered_coroutines_without_parent(self, label_tracer, memory_sink):
        @label_tracer.traced
        async def work(x):
            await asyncio.sleep(0)
            return x

        await asyncio.gather(work("a"), work("b"))
        assert memory_sink.lines == ["┌work('a')", "┌work('b')", "└work('a')", "└work('b')"]


class TestCallLabel:
    def test_no_arguments(self):
        assert call_label("f", (), {}) == "f()"

    def test_long_reprs_are_shortened(self):
        label = call_label("f", ("x" * 100,), {})
        assert label.endswith("...)")
        assert len(label) < 60


def test_default_sink_is_stdout(capsys):
    tracer = Tracer(config=RenderConfig(close_mode=CloseMode.LABEL))
    assert isinstance(tracer.sink, StreamSink)
    with tracer.span("A"):
        pass
    assert capsys.readouterr().out == "┌A\n└A\n"


def test_tracer_without_config_uses_defaults():
    tracer = Tracer(MemorySink())
    assert tracer.config == RenderConfig()
    assert tracer.renderer.config.close_mode is CloseMode.NONE
