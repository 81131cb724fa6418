"""Span stack: the live call-nesting path of one execution context.

No rendering here -- just a stack of frames.  Push on entry, pop on exit,
strictly LIFO.  The frames live in a ``ContextVar`` as an immutable tuple,
so every thread and every asyncio task sees its own path: tasks started by
``asyncio.gather`` inherit the frames open at creation time and push their
own children on top without disturbing each other.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field

from callspan.core.enums import Level
from callspan.core.errors import StackCorruptionError
from callspan.core.ids import new_id, short_id

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """One open call context.

    ``open_children`` counts children open in any context; concurrent tasks
    nested under one frame each hold a child at the same time.
    """

    depth: int
    label: str
    level: Level = Level.INFO
    open_children: int = 0
    span_id: str = field(default_factory=new_id)

    @property
    def has_open_child(self) -> bool:
        return self.open_children > 0

    @has_open_child.setter
    def has_open_child(self, value: bool) -> None:
        self.open_children = 1 if value else 0


class SpanStack:
    """Ordered frames of the calling context (outermost first).

    Each instance owns one ``ContextVar``; two stacks never share frames.
    """

    def __init__(self, name: str = "callspan_stack") -> None:
        self._var: ContextVar[tuple[Frame, ...]] = ContextVar(name, default=())

    # -- mutators -----------------------------------------------------------

    def open(self, label: str, level: Level = Level.INFO) -> Frame:
        """Push a new frame and return it as the release handle."""
        frames = self._var.get()
        if frames:
            frames[-1].open_children += 1
        frame = Frame(depth=len(frames), label=label, level=level)
        self._var.set(frames + (frame,))
        return frame

    def close(self, handle: Frame) -> Frame:
        """Pop *handle*, which must be the top frame of this context.

        Raises:
            StackCorruptionError: If *handle* is not the current top.
        """
        frames = self._var.get()
        top = frames[-1] if frames else None
        if top is not handle:
            logger.error(
                "Out-of-order span release: span=%s depth=%d top=%s",
                short_id(handle.span_id),
                handle.depth,
                short_id(top.span_id) if top is not None else "<empty>",
            )
            raise StackCorruptionError(
                f"span {handle.label!r} (depth {handle.depth}) released but "
                f"it is not the top of the stack"
            )
        frames = frames[:-1]
        self._var.set(frames)
        if frames:
            parent = frames[-1]
            parent.open_children = max(parent.open_children - 1, 0)
        return handle

    # -- read-only ----------------------------------------------------------

    @property
    def depth(self) -> int:
        """Number of open frames."""
        return len(self._var.get())

    @property
    def top(self) -> Frame | None:
        frames = self._var.get()
        return frames[-1] if frames else None

    def ancestors(self, frame: Frame) -> list[Frame]:
        """Frames strictly above *frame* in the nesting, outermost first."""
        return list(self._var.get()[: frame.depth])

    def frames(self) -> tuple[Frame, ...]:
        return self._var.get()

    def __len__(self) -> int:
        return len(self._var.get())

    def __contains__(self, frame: object) -> bool:
        return any(f is frame for f in self._var.get())
