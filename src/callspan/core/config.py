"""Configuration management.

``RenderConfig`` is the immutable parameter set of a tracer.  ``Settings``
loads it from TOML config files + environment variables, using
pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .enums import CloseMode, Level
from .errors import ConfigError

DEFAULT_GLYPHS: tuple[str, ...] = ("|", "¦", "┆", "┊")


def _parse_close_mode(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().lower()
    return v


def _parse_glyphs(v: Any) -> Any:
    # "|¦┆┊" from an env var or TOML string means one glyph per character
    if isinstance(v, str):
        return tuple(v)
    return v


# ---------------------------------------------------------------------------
# Render configuration
# ---------------------------------------------------------------------------

class RenderConfig(BaseModel):
    """Immutable rendering parameters, set once per tracer."""

    skip: int = Field(default=0, ge=0)  # leading columns omitted
    close_mode: CloseMode = CloseMode.NONE
    tabwidth: int = Field(default=2, ge=1)  # characters per column
    every: int = Field(default=1, ge=0)  # glyph on columns where col % every == 0
    glyphs: tuple[str, ...] = DEFAULT_GLYPHS
    level: Level = Level.TRACE

    model_config = {"frozen": True}

    @field_validator("close_mode", mode="before")
    @classmethod
    def close_mode_case_insensitive(cls, v: Any) -> Any:
        return _parse_close_mode(v)

    @field_validator("level", mode="before")
    @classmethod
    def level_from_name(cls, v: Any) -> Level:
        return Level.parse(v)

    @field_validator("glyphs", mode="before")
    @classmethod
    def glyphs_from_string(cls, v: Any) -> Any:
        return _parse_glyphs(v)

    @field_validator("glyphs")
    @classmethod
    def glyphs_must_be_single_chars(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("glyphs must contain at least one character")
        for g in v:
            if len(g) != 1:
                raise ValueError(f"each glyph must be a single character, got {g!r}")
        return v

    def glyph_for(self, column: int) -> str:
        """Pass-through glyph for an ancestor column."""
        return self.glyphs[column % len(self.glyphs)]

    def is_marked(self, column: int) -> bool:
        """Whether *column* carries a glyph at all."""
        return self.every > 0 and column % self.every == 0

    def replace(self, **changes: Any) -> RenderConfig:
        """Return a validated copy with *changes* applied.

        ``model_copy(update=...)`` skips validators, so rebuild instead.
        """
        return RenderConfig(**{**self.model_dump(), **changes})

    def with_skip(self, skip: int) -> RenderConfig:
        return self.replace(skip=skip)

    def with_close_mode(self, close_mode: CloseMode | str) -> RenderConfig:
        return self.replace(close_mode=close_mode)

    def with_glyphs(self, glyphs: tuple[str, ...] | str) -> RenderConfig:
        return self.replace(glyphs=glyphs)


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class ObservabilityConfig(BaseModel):
    log_level: str = "WARNING"
    log_format: str = "console"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level settings for the default tracer and the CLI.

    Loaded from TOML config files, overridden by environment variables
    (``CALLSPAN_SKIP=1``, ``CALLSPAN_OBSERVABILITY__LOG_LEVEL=DEBUG``).
    """

    # Rendering
    skip: int = 0
    close_mode: CloseMode = CloseMode.NONE
    tabwidth: int = 2
    every: int = 1
    glyphs: str = "".join(DEFAULT_GLYPHS)  # one glyph per character
    level: Level = Level.TRACE

    # Output
    output: str = "stdout"  # "stdout", "stderr" or a file path
    raise_on_output_error: bool = True

    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "CALLSPAN_", "env_nested_delimiter": "__"}

    @field_validator("close_mode", mode="before")
    @classmethod
    def close_mode_case_insensitive(cls, v: Any) -> Any:
        return _parse_close_mode(v)

    @field_validator("level", mode="before")
    @classmethod
    def level_from_name(cls, v: Any) -> Level:
        return Level.parse(v)

    @field_validator("glyphs", mode="before")
    @classmethod
    def glyphs_to_string(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return "".join(v)
        return v

    def render_config(self) -> RenderConfig:
        """Build the immutable render configuration.

        Raises:
            ConfigError: If the rendering fields are out of range.
        """
        try:
            return RenderConfig(
                skip=self.skip,
                close_mode=self.close_mode,
                tabwidth=self.tabwidth,
                every=self.every,
                glyphs=self.glyphs,
                level=self.level,
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid render configuration: {exc}") from exc


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from a TOML file, env vars and explicit overrides.

    Args:
        config_path: TOML config file (optional).  A missing file is
            ignored.
        overrides: Values applied on top of the file.  Nested tables such
            as ``observability`` are merged key by key.

    Raises:
        ConfigError: If the file is not valid TOML or a value fails
            validation.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            try:
                with open(path, "rb") as f:
                    data = tomli.load(f)
            except tomli.TOMLDecodeError as exc:
                raise ConfigError(f"Malformed config file {path}: {exc}") from exc

    if overrides:
        data = _merge(data, overrides)

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
