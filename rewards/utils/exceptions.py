"""
Custom exceptions for the rewards engine.

Promo code rejections are NOT exceptions: PromoService returns a
ValidationResult with valid=False so callers can show the message directly.
Everything here is a failure the caller has to handle.
"""


class RewardsError(Exception):
    """Base exception for all rewards engine errors."""

    def __init__(self, message: str, code: str = "REWARDS_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(RewardsError):
    """Loyalty program misconfigured (no tiers, missing program config)."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")


class NotFoundError(RewardsError):
    """Resource not found."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class AccountNotFoundError(NotFoundError):
    """Account not found."""

    def __init__(self, identifier=None):
        super().__init__("Account", identifier)


class OfferNotFoundError(NotFoundError):
    """Offer not found."""

    def __init__(self, identifier=None):
        super().__init__("Offer", identifier)


class InvalidInputError(RewardsError):
    """Caller supplied bad input (negative totals, malformed cart)."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "INVALID_INPUT"
        super().__init__(message, code)


class InsufficientPointsError(RewardsError):
    """Not enough spendable points for a redemption."""

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_POINTS")


class ConcurrencyConflict(RewardsError):
    """Another request changed the account between read and write."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} {identifier} was modified concurrently"
        super().__init__(message, "CONCURRENCY_CONFLICT")


class PersistenceError(RewardsError):
    """Storage failure. Nothing from the failed unit of work was committed."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "PERSISTENCE_ERROR")
