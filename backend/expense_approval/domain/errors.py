"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Token missing, invalid, or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """Acting role may not perform this action"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class UnsupportedCurrencyError(ValidationError):
    """Currency has no configured rate"""
    error_code = "UNSUPPORTED_CURRENCY"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class ExpenseNotFoundError(NotFoundError):
    """Expense not found, or not owned by the caller"""
    error_code = "EXPENSE_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class NoCurrentStepError(ConflictError):
    """Approval chain is empty or exhausted"""
    error_code = "NO_CURRENT_STEP"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class PersistenceError(EngineError):
    """Durable write failed - the operation did not commit"""
    error_code = "PERSISTENCE_ERROR"


class RuleEvaluationError(EngineError):
    """A single conditional rule could not be evaluated"""
    error_code = "RULE_EVALUATION_ERROR"


class ApproverResolutionError(EngineError):
    """Could not resolve approver for a role"""
    error_code = "APPROVER_RESOLUTION_ERROR"
    http_status = 400


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class NotificationError(ExternalServiceError):
    """Notification could not be dispatched"""
    error_code = "NOTIFICATION_ERROR"
