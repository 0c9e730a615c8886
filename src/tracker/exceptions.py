"""Custom exceptions for the portfolio tracker.

Domain code raises these; the HTTP layer maps each family to a status code.
"""


class TrackerError(Exception):
    """Base exception for all tracker errors."""


class NotFoundError(TrackerError):
    """Raised when a referenced asset, exchange, transaction or register is absent."""


class InvalidInputError(TrackerError):
    """Raised when input is rejected before any mutation."""


class AlreadyClosedError(InvalidInputError):
    """Raised when closing a transaction that is already closed."""


class ComputationError(TrackerError):
    """Raised when a statistic cannot be computed (empty or degenerate series)."""


class UpstreamError(TrackerError):
    """Raised when an external price or exchange source fails or times out.

    Retryable: callers may try again later. ``status`` carries the upstream
    HTTP status when one was received.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
