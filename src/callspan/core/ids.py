"""Canonical ID factory.

Span ids are UUID v4 strings.  They identify a frame for the LIFO check
and in diagnostic log lines; they are never rendered.
"""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate a new UUID v4 string."""
    return str(uuid.uuid4())


def short_id(span_id: str, length: int = 8) -> str:
    """Return the leading *length* hex characters of a span id for logs."""
    return span_id.replace("-", "")[:length]
