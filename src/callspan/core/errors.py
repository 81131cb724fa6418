"""Custom exception hierarchy for callspan."""


class CallspanError(Exception):
    """Base exception for all callspan errors."""


# --- Configuration ---
class ConfigError(CallspanError):
    """Invalid or missing configuration."""


# --- Span tracking ---
class StackCorruptionError(CallspanError, AssertionError):
    """A span was released out of LIFO order or more than once.

    This is a contract violation in the caller's scoping, not a
    recoverable condition.
    """


# --- Output ---
class OutputFailureError(CallspanError):
    """The line sink rejected or failed a write.

    Span tracking state is unaffected.  The sink's own exception is
    attached as ``__cause__``.
    """
