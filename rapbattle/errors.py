"""
rapbattle/errors.py
Centralized domain errors for the judging engine.

CORE PRINCIPLES:
- Every rejected operation raises a typed, recoverable error
- Errors carry a machine-readable code and enough detail to fix the request
- "Not ready to finalize" and "already finalized" are distinct families

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "machine_code",
    "details": {} (optional)
}
"""
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    SUBMISSION_WINDOW_CLOSED = "submission_window_closed"
    SUBMISSION_DEADLINE_PASSED = "submission_deadline_passed"
    JUDGING_WINDOW_CLOSED = "judging_window_closed"

    JUDGE_NOT_ASSIGNED = "judge_not_assigned"
    ASSIGNMENT_NOT_ALLOWED = "assignment_not_allowed"
    NOT_AUTHORIZED = "not_authorized"
    AUTH_REQUIRED = "auth_required"

    RUBRIC_INVALID = "rubric_invalid"
    MEDIA_NOT_READY = "media_not_ready"
    PARTICIPANT_ELIMINATED = "participant_eliminated"
    VALIDATION_FAILED = "validation_failed"

    NOT_FOUND = "not_found"
    ASSIGNMENT_NOT_FOUND = "assignment_not_found"

    INVALID_TRANSITION = "invalid_transition"
    MATCH_CLOSED = "match_closed"
    MATCH_ALREADY_FINALIZED = "match_already_finalized"
    ROUND_ALREADY_FINALIZED = "round_already_finalized"
    FINALIZE_NOT_READY = "finalize_not_ready"

    CONFLICT = "conflict"
    INTERNAL_ERROR = "internal_error"


class DomainError(Exception):
    """Base engine exception with consistent structure"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "Bad Request"
    code: str = ErrorCode.VALIDATION_FAILED
    default_message: str = "Request rejected"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


# =============================================================================
# Window guards
# =============================================================================

class SubmissionWindowClosedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    code = ErrorCode.SUBMISSION_WINDOW_CLOSED
    default_message = "Round is not accepting submissions."


class SubmissionDeadlinePassedError(SubmissionWindowClosedError):
    status_code = 422
    error = "Unprocessable Entity"
    code = ErrorCode.SUBMISSION_DEADLINE_PASSED
    default_message = "Submission deadline has passed."


class JudgingWindowClosedError(DomainError):
    status_code = 422
    error = "Unprocessable Entity"
    code = ErrorCode.JUDGING_WINDOW_CLOSED
    default_message = "Judging window is closed."


# =============================================================================
# Judge claims
# =============================================================================

class JudgeNotAssignedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    code = ErrorCode.JUDGE_NOT_ASSIGNED
    default_message = "Judge is not assigned to this target."


class AssignmentNotAllowedError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"
    code = ErrorCode.ASSIGNMENT_NOT_ALLOWED
    default_message = "Assignment is not allowed."


class NotAuthorizedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    code = ErrorCode.NOT_AUTHORIZED
    default_message = "Actor is not authorized for this resource."


class AuthRequiredError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"
    code = ErrorCode.AUTH_REQUIRED
    default_message = "An authenticated actor is required."


# =============================================================================
# Payload validation
# =============================================================================

class RubricInvalidError(DomainError):
    status_code = 422
    error = "Unprocessable Entity"
    code = ErrorCode.RUBRIC_INVALID
    default_message = "Rubric payload is invalid."


class MediaNotReadyError(DomainError):
    status_code = 422
    error = "Unprocessable Entity"
    code = ErrorCode.MEDIA_NOT_READY
    default_message = "Media asset must be ready."


class ParticipantEliminatedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    code = ErrorCode.PARTICIPANT_ELIMINATED
    default_message = "Eliminated participants cannot upload new submissions."


class ValidationFailedError(DomainError):
    status_code = 422
    error = "Unprocessable Entity"
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Payload validation failed."


# =============================================================================
# Lookup
# =============================================================================

class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"
    code = ErrorCode.NOT_FOUND
    default_message = "Resource not found."

    @classmethod
    def for_resource(cls, resource: str, identifier: Any = None) -> "NotFoundError":
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        return cls(message, details={"resource": resource, "id": identifier})


class AssignmentNotFoundError(NotFoundError):
    code = ErrorCode.ASSIGNMENT_NOT_FOUND
    default_message = "Assignment not found."


# =============================================================================
# State guards
# =============================================================================

class StateGuardError(DomainError):
    """Operation rejected by the lifecycle state of a round or match."""
    status_code = status.HTTP_409_CONFLICT
    error = "Invalid State"
    code = ErrorCode.INVALID_TRANSITION
    default_message = "Operation not allowed in the current state."


class InvalidTransitionError(StateGuardError):
    code = ErrorCode.INVALID_TRANSITION
    default_message = "Invalid status transition."


class MatchClosedError(StateGuardError):
    code = ErrorCode.MATCH_CLOSED
    default_message = "Match is closed."


class MatchAlreadyFinalizedError(MatchClosedError):
    code = ErrorCode.MATCH_ALREADY_FINALIZED
    default_message = "Match is already finalized."


class RoundAlreadyFinalizedError(StateGuardError):
    code = ErrorCode.ROUND_ALREADY_FINALIZED
    default_message = "Round results are already decided."


# =============================================================================
# Finalization readiness
# =============================================================================

class FinalizeNotReadyError(DomainError):
    """Target lacks the data required to decide an outcome."""
    status_code = 422
    error = "Not Ready"
    code = ErrorCode.FINALIZE_NOT_READY
    default_message = "Target is not ready to be finalized."


# =============================================================================
# Store errors
# =============================================================================

class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"
    code = ErrorCode.CONFLICT
    default_message = "Resource already exists."


def map_integrity_error(exc: IntegrityError) -> ConflictError:
    """Surface a unique-constraint violation verbatim as a conflict."""
    detail = str(exc.orig) if exc.orig is not None else str(exc)
    return ConflictError(details={"constraint": detail})


# =============================================================================
# FastAPI wiring
# =============================================================================

def register_exception_handlers(app: FastAPI) -> None:
    """Render every engine error in the standard envelope."""

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        return exc.to_response()

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"Integrity error on {request.url.path}")
        return map_integrity_error(exc).to_response()

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        field_errors = {
            ".".join(str(part) for part in error["loc"]): error["msg"]
            for error in exc.errors()
        }
        return ValidationFailedError(details={"field_errors": field_errors}).to_response()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log_id = str(uuid.uuid4())[:8]
        logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Internal Error",
                "message": "An unexpected error occurred. Please try again later.",
                "code": ErrorCode.INTERNAL_ERROR,
                "details": {"log_id": log_id},
            },
        )
