from __future__ import annotations


class EpicLoopError(Exception):
    """Base class for every failure raised by epicloop."""


class CatalogCorrupt(EpicLoopError):
    """The remote catalog (or our persisted copy of it) returned no usable data.

    The persisted copy is cleared before this is raised, so retrying the
    operation fetches fresh data.
    """


class DayUnavailable(EpicLoopError):
    """The requested day is not part of the catalog's list of available days."""


class ResourceError(EpicLoopError):
    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{message}: {key}")
        self.key = key


class ResourceNotFound(ResourceError):
    def __init__(self, key: str) -> None:
        super().__init__(key, "Resource not found")


class ResourceForbidden(ResourceError):
    def __init__(self, key: str) -> None:
        super().__init__(key, "Access forbidden")


class DecodeFailure(ResourceError):
    def __init__(self, key: str, detail: str = "") -> None:
        msg = "Failed to decode payload"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(key, msg)


class TransferError(ResourceError):
    def __init__(self, key: str, status_code: int | None = None, detail: str = "") -> None:
        msg = "Transfer failed"
        if status_code is not None:
            msg = f"{msg} with status {int(status_code)}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(key, msg)
        self.status_code = status_code


class RateLimited(EpicLoopError):
    """The server asked us to back off, or a previous back-off is still active."""

    def __init__(self, key: str, retry_after: float) -> None:
        super().__init__(f"Requests blocked for {float(retry_after):.1f}s: {key}")
        self.key = key
        self.retry_after = float(retry_after)


class Aborted(Exception):
    """A pending request was cancelled because nobody wants its result anymore.

    Not an `EpicLoopError`: callers are expected to treat it as "no result".
    """

    def __init__(self, key: str, reason: str = "") -> None:
        super().__init__(f"Aborted {key}" + (f": {reason}" if reason else ""))
        self.key = key
        self.reason = reason
