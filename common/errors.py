"""Error taxonomy for the order ledger.

Every error is reported to the immediate caller. ``retryable`` tells the
HTTP layer whether the client may try the same request again later.
"""

from typing import Optional


class LedgerError(Exception):
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError, ValueError):
    """Bad submission input; ``field`` names the first failing field."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(LedgerError, LookupError):
    def __init__(self, order_id: Optional[str]) -> None:
        super().__init__(f"order not found: {order_id}")
        self.order_id = order_id


class NotReadyError(LedgerError):
    """Caller identity is not available yet."""

    retryable = True


class StoreUnavailableError(LedgerError):
    """The durable write path failed. Resubmission is left to the user."""
