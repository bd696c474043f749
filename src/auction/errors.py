"""
Error taxonomy for auction operations.

Every rejected operation raises one of these. The API layer maps them to a
``{success: false, message, details}`` envelope using ``status_code``.
"""

from typing import Any, Optional


class AuctionError(Exception):
    """Base class for client-visible auction failures."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to response envelope."""
        body = {'success': False, 'message': self.message}
        if self.details is not None:
            body['details'] = self.details
        return body


class ValidationError(AuctionError):
    """Malformed or missing identifiers/amounts. Raised before the session is touched."""

    status_code = 400


class NotFoundError(AuctionError):
    """Tournament, player or team absent."""

    status_code = 404


class StateConflictError(AuctionError):
    """Operation's state precondition unmet (e.g. bidding while idle)."""

    status_code = 409


class BusinessRuleViolation(AuctionError):
    """Bid below minimum or quota infeasibility. ``details`` carries the shortfall."""

    status_code = 400
