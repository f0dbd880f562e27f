"""
Exceptions raised by the checkout, lifecycle and access modules. The API layer
(`main.py`) translates them into HTTP responses; the HTTP clients translate
transport and status errors of the hosted backend into PersistenceError.
"""


class MarketplaceError(Exception):
    """Base class for all domain errors. `message` is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CheckoutValidationError(MarketplaceError):
    """Checkout input rejected before anything was persisted."""

    def __init__(self, title: str, message: str):
        super().__init__(message)
        self.title = title


class AuthenticationError(MarketplaceError):
    pass


class AuthorizationError(MarketplaceError):
    pass


class NotFoundError(MarketplaceError):
    pass


class PersistenceError(MarketplaceError):
    """
    A create/read/update call against the hosted data store failed.

    Attributes:
        committed_order_ids (list): Orders already persisted by the failing
            operation (earlier vendor groups of a multi-vendor checkout).
    """

    def __init__(self, message: str, committed_order_ids=None):
        super().__init__(message)
        self.committed_order_ids = list(committed_order_ids or [])
