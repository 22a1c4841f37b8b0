"""Typed errors raised by the order and moderation engines.

Routes never translate these by hand: ``main.py`` registers one exception
handler that maps each class to its HTTP status.
"""


class MarketplaceError(Exception):
    """Base exception for all marketplace business errors."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(MarketplaceError):
    """Raised when input is malformed or missing."""

    status_code = 400


class InvalidOperation(MarketplaceError):
    """Raised when a well-formed request asks for something not allowed (self-purchase)."""

    status_code = 400


class Unauthorized(MarketplaceError):
    """Raised when the caller has no valid identity."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", details: dict | None = None):
        super().__init__(message, details)


class Forbidden(MarketplaceError):
    """Raised when the caller is known but not allowed, including admin protection."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", details: dict | None = None):
        super().__init__(message, details)


class NotFound(MarketplaceError):
    """Raised when an entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", {"entity": entity.lower(), "id": str(entity_id) if entity_id else None})


class Conflict(MarketplaceError):
    """Raised on a lost race for a single-unit resource or an invalid state transition."""

    status_code = 409


class Unavailable(MarketplaceError):
    """Raised when the store times out or is unreachable."""

    status_code = 503

    def __init__(self, message: str = "Store unavailable", details: dict | None = None):
        super().__init__(message, details)
