"""Error taxonomy for the pool portal.

Every I/O boundary (template loading, statistics collaborator, redis,
coin daemons, streaming connections) converts library errors into one of
these kinds so the callers only ever deal with portal errors.
"""


class PortalError(Exception):
    """Base class for all portal errors."""
    pass


class TemplateSyntaxError(PortalError):
    """Raised when template source cannot be compiled."""

    def __init__(self, message: str, page_id: str = None, lineno: int = None):
        super().__init__(message)
        self.page_id = page_id
        self.lineno = lineno


class StatisticsFetchError(PortalError):
    """Raised when the statistics collaborator fails or times out."""
    pass


class StoreUnavailableError(PortalError):
    """Raised when the persistent store cannot be read or written."""
    pass


class RpcFailure(PortalError):
    """Raised when a coin daemon call fails for a single symbol."""

    def __init__(self, message: str, symbol: str = None):
        super().__init__(message)
        self.symbol = symbol


class ConnectionWriteError(PortalError):
    """Raised when a live connection can no longer accept writes."""
    pass


class AdminAuthError(PortalError):
    """Raised when an admin request carries the wrong password."""
    pass
