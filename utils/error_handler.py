"""
Centralized Error Handling Module for Shutter

Provides consistent error responses, logging, and user-friendly messages.
The capture engine itself never raises these to callers of ShutterService;
they are raised by collaborators (capture providers, route validation) and
mapped to HTTP responses here.
"""

import logging
import traceback
from typing import Dict, Any, Optional
from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger("shutter")


# =============================================================================
# ERROR HINTS - User-friendly troubleshooting suggestions
# =============================================================================

ERROR_HINTS = {
    "capture_failed": {
        "message": "Failed to capture screen region",
        "hint": "Check that screen recording permission is granted and the region is on a visible display.",
    },
    "service_unavailable": {
        "message": "Shutter service not initialized",
        "hint": "The server is still starting up. Retry in a moment.",
    },
}


def get_error_with_hint(error_type: str, original_message: str = "") -> dict:
    """
    Get error message with troubleshooting hint.

    Args:
        error_type: Key from ERROR_HINTS dictionary
        original_message: Original error message to include

    Returns:
        Dict with error and hint
    """
    hint_info = ERROR_HINTS.get(error_type, {})
    return {
        "error": original_message or hint_info.get("message", "Unknown error"),
        "hint": hint_info.get("hint", ""),
    }


class ShutterError(Exception):
    """Base exception for all Shutter errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class CaptureError(ShutterError):
    """Raised by a capture provider when it cannot produce a bitmap"""

    def __init__(self, message: str, region: Optional[Dict[str, float]] = None):
        super().__init__(
            message, code="CAPTURE_FAILED", details={"region": region}
        )


class ServiceUnavailableError(ShutterError):
    """Raised when a route is hit before the service is wired up"""

    def __init__(self, component: str = "shutter_service"):
        super().__init__(
            f"{component} not initialized",
            code="SERVICE_UNAVAILABLE",
            details={"component": component},
        )


def create_error_response(
    error: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    include_traceback: bool = False,
) -> JSONResponse:
    """
    Create a standardized error response

    Args:
        error: The exception that occurred
        status_code: HTTP status code
        include_traceback: Include full traceback in response (debug only)

    Returns:
        JSONResponse with error details
    """
    error_response = {
        "success": False,
        "error": {"message": str(error), "type": error.__class__.__name__},
    }

    if isinstance(error, ShutterError):
        error_response["error"]["code"] = error.code
        error_response["error"]["details"] = error.details
        error_response["error"]["hint"] = get_error_with_hint(error.code.lower())["hint"]

    if include_traceback:
        error_response["error"]["traceback"] = traceback.format_exc()

    logger.error(f"{error.__class__.__name__}: {error}", exc_info=True)

    return JSONResponse(status_code=status_code, content=error_response)


def handle_api_error(error: Exception) -> JSONResponse:
    """
    Handle API errors with appropriate status codes

    Args:
        error: The exception to handle

    Returns:
        JSONResponse with appropriate status code
    """
    if isinstance(error, ValueError):
        return create_error_response(error, status.HTTP_400_BAD_REQUEST)

    elif isinstance(error, ServiceUnavailableError):
        return create_error_response(error, status.HTTP_503_SERVICE_UNAVAILABLE)

    elif isinstance(error, CaptureError):
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)

    else:
        return create_error_response(error, status.HTTP_500_INTERNAL_SERVER_ERROR)
