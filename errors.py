"""Error kinds raised by the cart core and mapped to HTTP statuses by the server."""
from typing import List, Optional


class CartError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CartValidationError(CartError):
    # malformed or missing input, never retried
    status_code = 400


class CartNotFoundError(CartError):
    status_code = 404


class CartConflictError(CartError):
    # another writer saved the same cart first
    status_code = 409


class StorageUnavailableError(CartError):
    status_code = 503


class MergeAbortedError(CartError):
    """A local cart merge stopped early.

    `merged` counts the entries already added to the server cart and
    `remaining` holds the entries that were not, in their original order.
    """

    def __init__(self, cause: CartError, merged: int, remaining: Optional[List] = None):
        super().__init__(
            f"Cart merge stopped after {merged} item(s): {cause.message}")
        self.cause = cause
        self.merged = merged
        self.remaining = remaining or []
        self.status_code = cause.status_code
