class FrontierError(Exception):
    """Base class for frontier failures."""


class StoreError(FrontierError):
    """A store operation failed (lost connection, lock timeout, ...)."""


class StoreUnavailableError(FrontierError):
    """The backing store could not be opened or created."""


class UnsupportedOperationError(FrontierError):
    """The requested operation is refused by the frontier."""
