# ==============================================================================
# Error Taxonomy
# ==============================================================================
"""
Exceptions raised by the query gateway and event log adapters.

Absence of data is never an error: queries over an empty window return
empty reports. Malformed per-event data is handled where it is read and
never surfaces here.
"""


class SiteLensError(Exception):
    """Base class for all analytics engine errors."""

    retryable: bool = False


class InvalidRangeError(SiteLensError, ValueError):
    """Request parameters rejected before any event log query is made.

    Raised for an end before (or equal to) the start, negative day offsets,
    a negative lookback window, or a range outside a strict retention horizon.
    """


class UpstreamUnavailableError(SiteLensError):
    """The event log failed or timed out.

    The whole query is failed; no partial result is ever returned.
    Callers may retry.
    """

    retryable = True

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
