"""
tabulation/errors.py
Centralized HTTP error handling

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 200: Successful, valid request
- 400: Invalid input / malformed request
- 404: Event, category or division does not exist
- 409: Invalid submission state transition
- 422: Validation error (Pydantic)
- 500: NEVER caused by user input (internal only)
- 503: Remote store unavailable
"""
import logging
from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

from tabulation.exceptions import (
    InvalidTransitionError,
    NotFoundError as TabulationNotFoundError,
    StoreError,
    TabulationException,
)

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    NOT_FOUND = "NOT_FOUND"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"

    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class BadRequestError(APIError):
    """400 Bad Request - Invalid input"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message=message,
            code=code,
            details=details
        )


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, message: str, code: str = ErrorCode.NOT_FOUND):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


class InvalidStateError(APIError):
    """409 Conflict - Invalid submission state transition"""
    def __init__(self, message: str, code: str = ErrorCode.STATE_TRANSITION_INVALID):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Invalid State",
            message=message,
            code=code
        )


class ServiceUnavailableError(APIError):
    """503 Service Unavailable - Remote store cannot be reached"""
    def __init__(self, message: str = "Score store is unavailable. Please try again later.", entity: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error="Service Unavailable",
            message=message,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            details={"entity": entity} if entity else None
        )


class InternalError(APIError):
    """500 Internal Server Error - Use sparingly, only for true internal failures"""
    def __init__(self, message: str = "An internal error occurred", log_id: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Internal Error",
            message=message,
            code=ErrorCode.INTERNAL_ERROR,
            details={"log_id": log_id} if log_id else None
        )


def to_api_error(exc: TabulationException) -> APIError:
    """Map an engine exception onto the HTTP error contract."""
    if isinstance(exc, StoreError):
        logger.error(f"Store failure surfaced to API: {exc.message}")
        return ServiceUnavailableError(entity=exc.entity)
    if isinstance(exc, TabulationNotFoundError):
        return NotFoundError(exc.message)
    if isinstance(exc, InvalidTransitionError):
        return InvalidStateError(exc.message)
    return InternalError(exc.message)
