"""
Error Handling Module for StockLedger

This module provides centralized error handling with:
- Custom exception hierarchy
- Standardized error responses
- Error logging and tracking
- Database error handling
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("stockledger.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_CLIENT_CODE = "INVALID_CLIENT_CODE"
    BULK_LIMIT_EXCEEDED = "BULK_LIMIT_EXCEEDED"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    TAG_NOT_FOUND = "TAG_NOT_FOUND"
    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    MOVEMENT_NOT_FOUND = "MOVEMENT_NOT_FOUND"
    TRANSFER_NOT_FOUND = "TRANSFER_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    ITEM_RESERVED = "ITEM_RESERVED"

    # Workflow Errors (409)
    INVALID_OPERATION = "INVALID_OPERATION"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TRANSFER_CLOSED = "TRANSFER_CLOSED"

    # Authentication (401)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Rate Limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # External Service Errors (502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidDateRangeException(ValidationException):
    """Invalid date range"""

    def __init__(self, start_date: Union[str, date], end_date: Union[str, date], message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid date range: {start_date} to {end_date}. Start date must not be after end date.",
            code=ErrorCode.INVALID_DATE_RANGE,
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )


class InvalidQuantityException(ValidationException):
    """Quantity must be a positive whole number"""

    def __init__(self, quantity: Any, field: str = "quantity"):
        super().__init__(
            message=f"Invalid quantity: {quantity}. Quantity must be greater than zero.",
            field=field,
            code=ErrorCode.INVALID_QUANTITY,
            details={"provided_quantity": str(quantity)},
        )


class BulkLimitExceededException(ValidationException):
    """Too many entries in one bulk call"""

    def __init__(self, count: int, limit: int):
        super().__init__(
            message=f"Bulk request has {count} entries. At most {limit} are allowed per call.",
            code=ErrorCode.BULK_LIMIT_EXCEEDED,
            details={"count": count, "limit": limit},
        )


class InsufficientInventoryException(ValidationException):
    """Requested quantity exceeds what is on hand"""

    def __init__(self, item_name: str, required: int, available: int):
        super().__init__(
            message=f"Insufficient inventory for '{item_name}'. Required: {required}, Available: {available}",
            code=ErrorCode.INSUFFICIENT_INVENTORY,
            details={
                "item": item_name,
                "required_quantity": required,
                "available_quantity": available,
                "shortfall": required - available,
            },
        )


class InvalidClientCodeException(ValidationException):
    """Malformed tenant client code"""

    def __init__(self, client_code: Optional[str]):
        super().__init__(
            message=f"Invalid client code: {client_code!r}",
            field="client_code",
            code=ErrorCode.INVALID_CLIENT_CODE,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class ProductNotFoundException(NotFoundException):
    """Product not found"""

    def __init__(self, product_id: Union[str, UUID]):
        super().__init__(
            resource_type="Product",
            resource_id=product_id,
            code=ErrorCode.PRODUCT_NOT_FOUND,
        )


class TagNotFoundException(NotFoundException):
    """No active product assignment for an RFID tag"""

    def __init__(self, tag_code: str):
        super().__init__(
            resource_type="Tag",
            resource_id=tag_code,
            message=f"No active product is assigned to tag '{tag_code}'",
            code=ErrorCode.TAG_NOT_FOUND,
        )


class LocationNotFoundException(NotFoundException):
    """Branch, counter or box not found"""

    def __init__(self, location_type: str, location_id: Union[str, UUID]):
        super().__init__(
            resource_type=location_type,
            resource_id=location_id,
            code=ErrorCode.LOCATION_NOT_FOUND,
        )


class MovementNotFoundException(NotFoundException):
    """Stock movement not found"""

    def __init__(self, movement_id: Union[str, UUID]):
        super().__init__(
            resource_type="StockMovement",
            resource_id=movement_id,
            code=ErrorCode.MOVEMENT_NOT_FOUND,
        )


class TransferNotFoundException(NotFoundException):
    """Stock transfer not found"""

    def __init__(self, transfer_id: Union[str, UUID]):
        super().__init__(
            resource_type="StockTransfer",
            resource_id=transfer_id,
            code=ErrorCode.TRANSFER_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class ItemReservedException(ConflictException):
    """Item already belongs to an open transfer"""

    def __init__(self, product_ref: str, transfer_number: Optional[str] = None):
        details = {"product": product_ref}
        if transfer_number:
            details["transfer_number"] = transfer_number
        super().__init__(
            message=f"Item '{product_ref}' is already part of an open transfer"
                    + (f" ({transfer_number})" if transfer_number else ""),
            resource_type="StockTransfer",
            code=ErrorCode.ITEM_RESERVED,
            details=details,
        )


# ============================================================================
# Workflow Exceptions
# ============================================================================

class InvalidOperationException(AppException):
    """Operation not allowed in the resource's current state"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_OPERATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class InvalidTransitionException(InvalidOperationException):
    """Status transition not in the transfer lifecycle"""

    def __init__(self, transfer_number: str, current: str, target: str, terminal: bool = False):
        if terminal:
            message = f"Transfer {transfer_number} is already {current} and can no longer change"
            code = ErrorCode.TRANSFER_CLOSED
        else:
            message = f"Transfer {transfer_number} cannot move from {current} to {target}"
            code = ErrorCode.INVALID_TRANSITION
        super().__init__(
            message=message,
            code=code,
            details={
                "transfer_number": transfer_number,
                "current_status": current,
                "requested_status": target,
            },
        )


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseException(AppException):
    """Database error exception"""

    def __init__(
        self,
        message: str = "A database error occurred",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            original_error=original_error,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # Internal details stay in the log
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# ============================================================================
# Error Tracking Middleware
# ============================================================================

class ErrorTrackingMiddleware:
    """Middleware for tracking and logging all errors"""

    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            logger.error(
                f"Request failed: {scope.get('path', 'unknown')}",
                extra={
                    "path": scope.get("path"),
                    "method": scope.get("method"),
                    "exception_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise


def error_summary(exc: Exception) -> Dict[str, Any]:
    """Compact code/message pair for per-entry bulk error reports."""
    if isinstance(exc, AppException):
        return {"code": exc.code.value, "message": exc.message}
    return {"code": ErrorCode.INTERNAL_ERROR.value, "message": str(exc) or type(exc).__name__}


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidDateRangeException",
    "InvalidQuantityException",
    "BulkLimitExceededException",
    "InsufficientInventoryException",
    "InvalidClientCodeException",

    # Resource
    "NotFoundException",
    "ProductNotFoundException",
    "TagNotFoundException",
    "LocationNotFoundException",
    "MovementNotFoundException",
    "TransferNotFoundException",
    "ConflictException",
    "ItemReservedException",

    # Workflow
    "InvalidOperationException",
    "InvalidTransitionException",

    # Database
    "DatabaseException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
    "ErrorTrackingMiddleware",
    "error_summary",
]
