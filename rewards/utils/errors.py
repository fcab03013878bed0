"""
Standardized error response utilities for the rewards API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE"
    }
}

Usage:
    from rewards.utils.errors import error_response, ErrorCode

    return error_response("Account not found", ErrorCode.NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

from .exceptions import (
    RewardsError,
    ConfigurationError,
    NotFoundError,
    InvalidInputError,
    InsufficientPointsError,
    ConcurrencyConflict,
    PersistenceError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"

    # Conflict (409)
    STATE_CONFLICT = "STATE_CONFLICT"

    # Business Logic Errors (422)
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Server Errors (500, 503)
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code
        log_error: Whether to log the error
        details: Optional additional details (only logged, not returned to user)

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}", extra={"details": details})

    response = {
        "error": {
            "message": message,
            "code": code.value if isinstance(code, ErrorCode) else code
        }
    }
    return jsonify(response), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request."""
    return error_response(message, code, 400)


def not_found(resource: str = "Resource") -> tuple:
    """404 Not Found."""
    return error_response(f"{resource} not found", ErrorCode.NOT_FOUND, 404)


def exception_response(error: RewardsError) -> tuple:
    """Map a rewards exception onto the standard envelope and HTTP status."""
    if isinstance(error, NotFoundError):
        return error_response(error.message, ErrorCode.NOT_FOUND, 404)
    if isinstance(error, InvalidInputError):
        code = ErrorCode.INVALID_FIELD if error.field else ErrorCode.INVALID_REQUEST
        return error_response(error.message, code, 400)
    if isinstance(error, InsufficientPointsError):
        return error_response(error.message, ErrorCode.INSUFFICIENT_BALANCE, 422)
    if isinstance(error, ConcurrencyConflict):
        return error_response(error.message, ErrorCode.STATE_CONFLICT, 409)
    if isinstance(error, ConfigurationError):
        return error_response(error.message, ErrorCode.CONFIGURATION_ERROR, 500)
    if isinstance(error, PersistenceError):
        return error_response(
            'Could not save changes, please retry',
            ErrorCode.DATABASE_ERROR,
            503,
            details={'error': error.message}
        )
    return error_response(error.message, ErrorCode.INTERNAL_ERROR, 500)
