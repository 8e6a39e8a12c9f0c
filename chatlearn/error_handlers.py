# chatlearn/error_handlers.py
"""
Application exceptions, error codes and the FastAPI handlers that render
them as {"error": "<message>", "code": "ERR_xxxx", ...}.
"""

import traceback
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)


# ============================================================================
# ERROR CODES
# ============================================================================

class ErrorCode:
    """Stable codes the frontend can switch on"""

    # General errors (1xxx)
    INTERNAL_SERVER_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1003"
    FORBIDDEN = "ERR_1004"
    RATE_LIMIT_EXCEEDED = "ERR_1005"
    CONFIGURATION_ERROR = "ERR_1006"

    # Database errors (2xxx)
    DATABASE_ERROR = "ERR_2000"
    INTEGRITY_ERROR = "ERR_2001"

    # Business logic errors (3xxx)
    SUBSCRIPTION_REQUIRED = "ERR_3000"
    MESSAGE_LIMIT_REACHED = "ERR_3001"
    INVALID_AUDIO = "ERR_3002"
    INVALID_IMAGE = "ERR_3003"
    INVALID_WEBHOOK_PAYLOAD = "ERR_3004"
    IMAGE_GENERATION_FAILED = "ERR_3005"
    ACCOUNT_DELETION_FAILED = "ERR_3006"

    # External service errors (4xxx)
    AI_PROVIDER_ERROR = "ERR_4000"
    STORAGE_ERROR = "ERR_4001"
    PAYMENT_GATEWAY_ERROR = "ERR_4002"
    CLERK_ERROR = "ERR_4003"
    SPEECH_SERVICE_ERROR = "ERR_4004"


# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = ErrorCode.VALIDATION_ERROR
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class NotFoundException(AppException):
    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=ErrorCode.NOT_FOUND,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "identifier": identifier}
        )


class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class ForbiddenException(AppException):
    def __init__(self, message: str = "Access denied"):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN,
            status_code=status.HTTP_403_FORBIDDEN
        )


class SubscriptionRequiredException(AppException):
    """Raised when a pro model is requested without an active plan"""

    def __init__(self, model_id: str):
        super().__init__(
            message=f"An active subscription is required to use {model_id}",
            error_code=ErrorCode.SUBSCRIPTION_REQUIRED,
            status_code=status.HTTP_403_FORBIDDEN,
            details={"model": model_id}
        )


class ConfigurationException(AppException):
    """Raised when a required key or setting is absent"""

    def __init__(self, setting_name: str):
        super().__init__(
            message=f"{setting_name} is not configured",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"setting": setting_name}
        )


class ExternalServiceException(AppException):
    """Raised when a hosted API (AI provider, Stripe, storage) fails"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: str = ErrorCode.INTERNAL_SERVER_ERROR,
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        upstream_status: Optional[int] = None
    ):
        self.service_name = service_name
        self.upstream_status = upstream_status
        super().__init__(
            message=f"{service_name} error: {message}",
            error_code=error_code,
            status_code=status_code,
            details={"service": service_name}
        )


# ============================================================================
# ERROR RESPONSE FORMATTER
# ============================================================================

def format_error_response(
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Returns:
        {"error": "Something went wrong", "code": "ERR_1000",
         "details": {...}, "request_id": "abc123"}
    """
    response: Dict[str, Any] = {
        "error": message,
        "code": error_code,
    }
    if details:
        response["details"] = details
    if request_id:
        response["request_id"] = request_id
    return response


# ============================================================================
# FASTAPI EXCEPTION HANDLERS
# ============================================================================

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application error: {exc.message}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "path": request.url.path,
                "method": request.method,
                "details": exc.details
            }
        }
    )

    details = exc.details
    if settings.ENVIRONMENT == "production" and exc.status_code >= 500:
        details = None

    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            error_code=exc.error_code,
            message=exc.message,
            details=details,
            request_id=request_id
        )
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    error_code = {
        status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
        status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
        status.HTTP_429_TOO_MANY_REQUESTS: ErrorCode.RATE_LIMIT_EXCEEDED,
    }.get(exc.status_code, ErrorCode.INTERNAL_SERVER_ERROR if exc.status_code >= 500 else ErrorCode.VALIDATION_ERROR)

    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            error_code=error_code,
            message=str(exc.detail),
            request_id=request_id
        ),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        "Validation error",
        extra={
            "request_id": request_id,
            "extra_data": {
                "path": request.url.path,
                "method": request.method,
                "errors": errors
            }
        }
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=format_error_response(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Request validation failed",
            details={"validation_errors": errors},
            request_id=request_id
        )
    )


async def sqlalchemy_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    if isinstance(exc, IntegrityError):
        error_code = ErrorCode.INTEGRITY_ERROR
        message = "Database integrity constraint violated"
        status_code = status.HTTP_409_CONFLICT
    else:
        error_code = ErrorCode.DATABASE_ERROR
        message = "Database operation failed"
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.error(
        f"Database error: {str(exc)}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method
            }
        },
        exc_info=True
    )

    # Never leak SQL in production
    details = None if settings.ENVIRONMENT == "production" else {"database_error": str(exc)}

    return JSONResponse(
        status_code=status_code,
        content=format_error_response(
            error_code=error_code,
            message=message,
            details=details,
            request_id=request_id
        )
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    logger.critical(
        f"Unhandled exception: {str(exc)}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "exception_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method
            }
        },
        exc_info=True
    )

    if settings.ENVIRONMENT == "production":
        message = "An unexpected error occurred. Please try again."
        details = None
    else:
        message = str(exc) or type(exc).__name__
        details = {"traceback": traceback.format_exc().split("\n")}

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error_response(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            message=message,
            details=details,
            request_id=request_id
        )
    )


def register_exception_handlers(app):
    """
    Register handlers from most to least specific:
    app exceptions, validation, SQLAlchemy, everything else.
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
