"""
Utility modules for the rewards engine.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    not_found,
    exception_response,
)
from .exceptions import (
    RewardsError,
    ConfigurationError,
    NotFoundError,
    AccountNotFoundError,
    OfferNotFoundError,
    InvalidInputError,
    InsufficientPointsError,
    ConcurrencyConflict,
    PersistenceError,
)
from .money import to_decimal, to_cents, format_money
from .clock import utcnow
