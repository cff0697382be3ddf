"""
Exception hierarchy for instrument control.

Every failure the core can report derives from InstrumentError, so callers
can catch one type and turn it into a status string with describe_error().
"""


class InstrumentError(Exception):
    """Base class for all instrument control errors."""


class NotConnectedError(InstrumentError):
    """Operation attempted without an active connection."""

    def __init__(self, message: str = "Not connected to instrument"):
        super().__init__(message)


class ConnectionFailedError(InstrumentError, ConnectionError):
    """Opening the connection or the identification check failed."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class InstrumentTimeoutError(InstrumentError, TimeoutError):
    """No reply line arrived within the read timeout."""


class InstrumentIOError(InstrumentError):
    """Low-level write or read failure on the connection."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class ResponseParseError(InstrumentError, ValueError):
    """A reply could not be parsed as a number."""

    def __init__(self, raw: str):
        super().__init__(f"Invalid numeric response: {raw!r}")
        self.raw = raw


class InvalidRangeError(InstrumentError, ValueError):
    """Sweep range is empty, inverted or has a non-positive step."""


class NoValidSamplesError(InstrumentError):
    """Auto-tune finished without a single valid reading."""

    def __init__(self, message: str = "No valid samples collected"):
        super().__init__(message)


class SessionBusyError(InstrumentError):
    """Another operation already holds the instrument session."""

    def __init__(self, message: str = "Instrument is busy with another operation"):
        super().__init__(message)


def describe_error(exc: BaseException) -> str:
    """
    Map an error to a short, human-readable status string.

    Args:
        exc: Any exception raised by the core

    Returns:
        Status text suitable for a label or log line
    """
    if isinstance(exc, NotConnectedError):
        return "Not connected"
    if isinstance(exc, ConnectionFailedError):
        if exc.cause is not None:
            return f"Connection failed: {exc.cause}"
        return f"Connection failed: {exc}"
    if isinstance(exc, InstrumentTimeoutError):
        return "Instrument read timed out"
    if isinstance(exc, InstrumentIOError):
        return f"I/O error: {exc}"
    if isinstance(exc, ResponseParseError):
        return f"Invalid response: '{exc.raw}'"
    if isinstance(exc, InvalidRangeError):
        return f"Invalid sweep range: {exc}"
    if isinstance(exc, NoValidSamplesError):
        return "No valid samples"
    if isinstance(exc, SessionBusyError):
        return "Instrument busy"
    return f"Error: {exc}"
