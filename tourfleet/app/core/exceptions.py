"""
Custom exceptions and error handlers for consistent error responses.

Provides the allocation error taxonomy and global exception handlers.
Every ledger or storage failure is translated into one of these before it
leaves the service layer.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, List, Optional

logger = logging.getLogger("tourfleet")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ConflictError(AppException):
    """
    Requested interval is unavailable on the vehicle.

    Always recoverable by the caller: pick a different vehicle or time.
    """

    def __init__(self, message: str = "Time slot is no longer available", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ALLOC_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class ExpiredError(AppException):
    """Hold TTL passed before commit. Caller must request a fresh hold."""

    def __init__(self, hold_token: Optional[str] = None, details: Dict[str, Any] = None):
        details = details or {}
        if hold_token:
            details.setdefault("hold_token", hold_token)
        super().__init__(
            message="Hold has expired, please reselect",
            error_code="ERR_ALLOC_EXPIRED",
            status_code=status.HTTP_410_GONE,
            details=details
        )


class ComplianceViolation(AppException):
    """Driver would breach HOS or air-mile rules."""

    def __init__(self, driver_id: int, violations: List[Dict[str, Any]], details: Dict[str, Any] = None):
        self.driver_id = driver_id
        self.violations = violations
        primary = violations[0]["message"] if violations else "Compliance check failed"
        payload = {"driver_id": driver_id, "violations": violations}
        payload.update(details or {})
        super().__init__(
            message=f"Driver cannot be assigned: {primary}",
            error_code="ERR_ALLOC_COMPLIANCE",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=payload
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Allocation code refers to the taxonomy name
NotFoundError = ResourceNotFoundError


class AllocationValidationError(AppException):
    """Raised when a request is malformed or targets an ineligible vehicle."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ALLOC_INVALID",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class LedgerInconsistencyError(AppException):
    """Ledger and booking records disagree. Needs an operator, never auto-fixed."""

    def __init__(self, missing_booking_ids: List[int]):
        super().__init__(
            message=f"{len(missing_booking_ids)} confirmed booking(s) have no availability block",
            error_code="ERR_LEDGER_INCONSISTENT",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"missing_booking_ids": missing_booking_ids}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw ValueError raised by a validator
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"path": request.url.path, "exception_type": type(exc).__name__}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
