"""Error taxonomy for market operations. Every failure is scoped to one operation."""

from __future__ import annotations


class MarketError(Exception):
    """Base class. `code` is machine-readable, `status_code` is the HTTP mapping."""

    code = "market_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code


class ValidationError(MarketError):
    """Invalid input."""

    code = "validation_error"
    status_code = 422


class InsufficientFunds(MarketError):
    """Insufficient balance."""

    code = "insufficient_funds"
    status_code = 402


class EventNotFound(MarketError):
    """Event not found."""

    code = "event_not_found"
    status_code = 404


class EventClosed(MarketError):
    """Event is closed."""

    code = "event_closed"
    status_code = 409


class EventExpired(MarketError):
    """Event deadline has passed."""

    code = "event_expired"
    status_code = 409


class WrongSideForUnmatchedMarket(MarketError):
    """Only the side opposing the creator may bet until the market is matched."""

    code = "wrong_side_for_unmatched_market"
    status_code = 409


class SettlementTooEarly(MarketError):
    """Event deadline has not been reached."""

    code = "settlement_too_early"
    status_code = 409


class OracleIndeterminate(MarketError):
    """Oracle could not resolve the outcome."""

    code = "oracle_indeterminate"
    status_code = 503
    retryable = True


class ConcurrencyTimeout(MarketError):
    """Timed out waiting for a lock; retry."""

    code = "busy"
    status_code = 503
    retryable = True


class PersistenceFailure(MarketError):
    """Storage unavailable; the operation was rolled back."""

    code = "persistence_failure"
    status_code = 503
    retryable = True
