"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .observability import metrics_collector

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://lodging.example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt

    Every engine error carries a stable machine ``code`` and a ``retryable``
    flag so callers can decide whether re-submitting the same request makes
    sense.
    """

    code = "PROBLEM"
    retryable = False

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail_text = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
            "code": self.code,
            "retryable": self.retryable,
        }

        if detail:
            self.problem_details["detail"] = detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.detail_text or self.title}"


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            extensions=extensions,
        )


class InvalidDateRangeError(ValidationError):
    """Check-in/check-out pair that does not describe a bookable stay."""

    code = "INVALID_DATE_RANGE"

    def __init__(self, check_in: date, check_out: date, detail: Optional[str] = None):
        super().__init__(
            detail=detail or f"Invalid stay {check_in.isoformat()} to {check_out.isoformat()}",
            errors={"check_in": check_in.isoformat(), "check_out": check_out.isoformat()},
        )
        self.title = "Invalid Date Range"
        self.type_uri = f"{PROBLEM_BASE_URI}/invalid-date-range"
        self.problem_details["title"] = self.title
        self.problem_details["type"] = self.type_uri


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {"resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    code = "CONFLICT"

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    code = "INTERNAL_ERROR"

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        extensions = {
            "error_id": error_id or str(uuid.uuid4()),
            "timestamp": _timestamp(),
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/internal-server-error",
            instance=instance,
            extensions=extensions,
        )


# Booking engine exceptions

class InvalidTransitionError(ProblemDetailsException):
    """The booking's current state does not allow the requested action."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        booking_id: str,
        from_status: str,
        action: str,
        detail: Optional[str] = None,
    ):
        super().__init__(
            status_code=409,
            title="Invalid Transition",
            detail=detail or f"Cannot {action} booking {booking_id} in status {from_status}",
            type_uri=f"{PROBLEM_BASE_URI}/invalid-transition",
            extensions={
                "booking_id": booking_id,
                "from_status": from_status,
                "action": action,
            },
        )
        self.from_status = from_status
        self.action = action


class CapacityUnavailableError(ProblemDetailsException):
    """Not enough free-to-sell room-nights for one or more dates of the stay."""

    code = "CAPACITY_UNAVAILABLE"

    def __init__(
        self,
        room_type_id: str,
        unavailable_date: date,
        requested: int,
        available: int,
    ):
        super().__init__(
            status_code=409,
            title="Capacity Unavailable",
            detail=(
                f"Only {available} room(s) left on {unavailable_date.isoformat()}, "
                f"{requested} requested"
            ),
            type_uri=f"{PROBLEM_BASE_URI}/capacity-unavailable",
            extensions={
                "room_type_id": room_type_id,
                "date": unavailable_date.isoformat(),
                "requested": requested,
                "available": available,
            },
        )
        self.unavailable_date = unavailable_date
        self.available = available


class HoldExpiredError(ProblemDetailsException):
    """The booking's hold lapsed; the caller must request availability again."""

    code = "HOLD_EXPIRED"

    def __init__(
        self,
        hold_token: str,
        expired_at: Optional[datetime],
        detail: Optional[str] = None,
    ):
        expired_iso = expired_at.isoformat() + "Z" if expired_at else None
        if not detail:
            detail = f"Hold {hold_token} expired"
            if expired_iso:
                detail += f" at {expired_iso}"

        super().__init__(
            status_code=410,
            title="Hold Expired",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/hold-expired",
            extensions={"hold_token": hold_token, "expired_at": expired_iso},
        )
        self.hold_token = hold_token


class ConcurrencyConflictError(ProblemDetailsException):
    """Lock contention or a serialization failure; safe to retry."""

    code = "CONCURRENCY_CONFLICT"
    retryable = True

    def __init__(self, detail: str = "The resource is busy, please retry", resource: Optional[str] = None):
        extensions = {}
        if resource:
            extensions["resource"] = resource

        super().__init__(
            status_code=409,
            title="Concurrency Conflict",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/concurrency-conflict",
            extensions=extensions,
            headers={"Retry-After": "1"},
        )


class InvariantViolationError(ProblemDetailsException):
    """
    Internal bookkeeping would be corrupted by the requested mutation.

    Raised instead of clamping a counter; the surrounding transaction is
    rolled back and the error is logged at CRITICAL level.
    """

    code = "INVARIANT_VIOLATION"

    def __init__(self, detail: str, context: Optional[Dict[str, Any]] = None):
        error_id = str(uuid.uuid4())
        super().__init__(
            status_code=500,
            title="Invariant Violation",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/invariant-violation",
            extensions={"error_id": error_id, "timestamp": _timestamp()},
        )
        self.context = context or {}
        metrics_collector.record_invariant_violation()
        logger.critical(
            "Invariant violation",
            extra={"error_id": error_id, "detail": detail, **self.context},
        )


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", str(request.url.path))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())
    logger.exception(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path},
    )

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "code": "INTERNAL_ERROR",
        "retryable": False,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url.path),
        "error_id": error_id,
        "timestamp": _timestamp(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as Problem Details with one violation per field."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body",
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "detail": "The request data failed validation",
            "instance": str(request.url.path),
            "violations": violations,
        },
        media_type="application/problem+json",
    )
