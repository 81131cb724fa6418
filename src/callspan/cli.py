"""CLI entry point: run the traced demo programs."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import click

from .core.config import Settings, load_settings
from .core.enums import CloseMode, Level
from .core.errors import CallspanError
from .tracing.tracer import Tracer


def _common_options(fn: Any) -> Any:
    options = [
        click.option("--config", default=None, help="TOML config file path"),
        click.option("--skip", default=None, type=int, help="Leading columns to omit"),
        click.option(
            "--close-mode",
            default=None,
            type=click.Choice([m.value for m in CloseMode]),
            help="What a closing span prints",
        ),
        click.option("--every", default=None, type=int, help="Draw a glyph every N columns"),
        click.option("--tabwidth", default=None, type=int, help="Characters per column"),
        click.option(
            "--level",
            default=None,
            type=click.Choice([lv.name for lv in Level], case_sensitive=False),
            help="Minimum span level to show",
        ),
        click.option("--output", default=None, help="stdout, stderr or a file path"),
        click.option("--log-level", default=None, help="Diagnostic log level"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _settings(config: str | None, **cli: Any) -> Settings:
    overrides: dict[str, Any] = {}
    for key in ("skip", "close_mode", "every", "tabwidth", "level", "output"):
        if cli.get(key) is not None:
            overrides[key] = cli[key]
    if cli.get("log_level"):
        overrides["observability"] = {"log_level": cli["log_level"]}
    return load_settings(config_path=config, overrides=overrides)


@contextmanager
def _demo_tracer(config: str | None, cli: dict[str, Any]) -> Iterator[Tracer]:
    """Yield a tracer for one demo run; errors become click errors."""
    from .observability.logger import setup_logging
    from .tracing.default import tracer_from_settings
    from .tracing.sinks import FileSink

    try:
        settings = _settings(config, **cli)
        setup_logging(
            level=settings.observability.log_level,
            format=settings.observability.log_format,
        )
        tracer = tracer_from_settings(settings)
    except CallspanError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        yield tracer
    except CallspanError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        if isinstance(tracer.sink, FileSink):
            tracer.sink.close()


@click.group()
def main() -> None:
    """Call-stack visualizer."""


@main.command()
@click.argument("n", type=click.IntRange(0, 30))
@_common_options
def fib(n: int, config: str | None, **cli: Any) -> None:
    """Trace a recursive Fibonacci computation."""
    from .demos.fib import fib as run_fib

    with _demo_tracer(config, cli) as tracer:
        result = run_fib(tracer, n)
    click.echo(f"fib({n}) = {result}", err=True)


@main.command()
@click.argument("expression")
@_common_options
def parse(expression: str, config: str | None, **cli: Any) -> None:
    """Trace a Pratt parse of an arithmetic EXPRESSION."""
    from .demos.expr_parser import evaluate, parse as run_parse

    with _demo_tracer(config, cli) as tracer:
        result = evaluate(run_parse(expression, tracer))
    click.echo(f"{expression} = {result:g}", err=True)


if __name__ == "__main__":
    main()
