"""Error taxonomy shared by the cart engine, services and HTTP layer"""
from typing import Optional


class MarketplaceError(Exception):
    """Base class for errors surfaced to callers"""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Out-of-range input (quantity < 1, rating outside 1-5, ...)"""

    status_code = 400


class AuthorizationError(MarketplaceError):
    """Caller is not allowed to perform the operation"""

    status_code = 403


class AuthenticationError(AuthorizationError):
    """No usable identity was presented"""

    status_code = 401


class NotFoundError(MarketplaceError):
    status_code = 404


class ConflictError(MarketplaceError):
    """Duplicate of something that must be unique"""

    status_code = 409


class CollaboratorError(MarketplaceError):
    """
    Failure of an underlying store or remote service: timeout, 5xx,
    connection failure. Always safe to retry the operation that raised it.
    """

    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status
