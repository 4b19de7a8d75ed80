"""
Standardized error handling utilities for EcoRewards API endpoints.
Provides consistent error formats, HTTP status codes, and error codes across all endpoints.
"""

import logging
from flask import jsonify
from typing import Dict, Any, Optional

from exceptions import (
    AlreadyVerifiedError,
    AuthenticationError,
    InvalidTransitionError,
    MalformedDocumentError,
    MediaDecodeError,
    NotFoundError,
    OracleUnreachableError,
    RenderContextError,
    ValidationError,
    VerificationInProgressError,
    VerificationTimeoutError,
    WriteConflictError,
)

# Standard error codes for consistent API responses
ERROR_CODES = {
    # Authentication errors
    "TOKEN_MISSING": "Authentication token is missing",
    "TOKEN_INVALID": "Authentication token is invalid or expired",

    # Validation errors
    "BAD_REQUEST": "Invalid request body or parameters",
    "VALIDATION_ERROR": "Request validation failed",
    "MEDIA_ERROR": "The uploaded media could not be processed",

    # Resource errors
    "NOT_FOUND": "Resource not found",

    # Lifecycle errors
    "INVALID_TRANSITION": "This action is not allowed for the item in its current state",
    "ALREADY_VERIFIED": "This item has already been verified",
    "VERIFICATION_IN_PROGRESS": "A verification for this item is already in progress",
    "WRITE_CONFLICT": "The resource was modified concurrently, please retry",
    "VERIFICATION_TIMEOUT": "Video analysis is taking longer than expected",

    # System errors
    "SERVER_ERROR": "Internal server error",
    "DATABASE_ERROR": "Database operation failed",
    "EXTERNAL_SERVICE_ERROR": "External service unavailable",
}

# Most specific classes first; the first isinstance match wins.
EXCEPTION_MAP = [
    (AuthenticationError, None, 401),
    (AlreadyVerifiedError, "ALREADY_VERIFIED", 409),
    (InvalidTransitionError, "INVALID_TRANSITION", 409),
    (VerificationInProgressError, "VERIFICATION_IN_PROGRESS", 409),
    (WriteConflictError, "WRITE_CONFLICT", 409),
    (NotFoundError, "NOT_FOUND", 404),
    (ValidationError, "VALIDATION_ERROR", 400),
    (MediaDecodeError, "MEDIA_ERROR", 422),
    (RenderContextError, "MEDIA_ERROR", 422),
    (VerificationTimeoutError, "VERIFICATION_TIMEOUT", 504),
    (OracleUnreachableError, "EXTERNAL_SERVICE_ERROR", 502),
    (MalformedDocumentError, "DATABASE_ERROR", 500),
]


def create_error_response(
    error_code: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    status_code: int = 500
) -> tuple:
    """
    Create a standardized error response with consistent format.

    Args:
        error_code: One of the standard ERROR_CODES keys
        message: Optional custom message (defaults to standard message)
        details: Optional additional error details
        status_code: HTTP status code

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    if error_code not in ERROR_CODES:
        logging.warning(f"Unknown error code used: {error_code}")
        error_code = "SERVER_ERROR"

    error_message = message or ERROR_CODES[error_code]

    response_data = {
        "error_code": error_code,
        "message": error_message
    }

    if details:
        response_data["details"] = details

    if status_code >= 500:
        logging.error(f"API Error [{error_code}]: {error_message} - Status: {status_code}")
    else:
        logging.info(f"API Error [{error_code}]: {error_message} - Status: {status_code}")

    return jsonify(response_data), status_code


def domain_error_response(e) -> tuple:
    """Maps an EcoRewardsError subclass onto its registered code and status."""
    for exc_type, error_code, status_code in EXCEPTION_MAP:
        if isinstance(e, exc_type):
            if isinstance(e, AuthenticationError):
                error_code = e.error_code
            return create_error_response(error_code, e.message or None, e.details or None, status_code)
    return handle_exception(e, "domain service")


def handle_exception(e: Exception, context: str = "API endpoint") -> tuple:
    """
    Handle unexpected exceptions with standardized error response.

    Args:
        e: The exception that occurred
        context: Context information for logging

    Returns:
        Tuple of (JSON response, HTTP status code)
    """
    error_type = type(e).__name__
    error_message = str(e)

    logging.error(f"Unexpected error in {context}: {error_type} - {error_message}", exc_info=True)

    return create_error_response(
        error_code="SERVER_ERROR",
        message="An unexpected error occurred",
        details={"error_type": error_type},
        status_code=500
    )


# Common error response shortcuts
def not_found_error(message: Optional[str] = None) -> tuple:
    return create_error_response("NOT_FOUND", message, status_code=404)


def bad_request_error(message: Optional[str] = None, details: Optional[Dict] = None) -> tuple:
    return create_error_response("BAD_REQUEST", message, details, status_code=400)
