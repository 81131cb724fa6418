"""Enumerations used across callspan."""

from enum import Enum, IntEnum


class CloseMode(str, Enum):
    LABEL = "label"  # close line repeats the label
    CORNER = "corner"  # close line is a bare corner
    NONE = "none"  # only the outermost visible close draws a corner


class Level(IntEnum):
    """Span levels, ordered.

    A span below the tracer's threshold is neither tracked nor rendered.
    """

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4

    @classmethod
    def parse(cls, value: "Level | int | str") -> "Level":
        """Accept a member, its integer value, or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name == "WARNING":
                name = "WARN"
            try:
                return cls[name]
            except KeyError:
                if not name.isdigit():
                    raise ValueError(f"Unknown level: {value!r}") from None
                value = int(name)
        return cls(value)


class SpanEvent(str, Enum):
    OPEN = "open"
    CLOSE = "close"
