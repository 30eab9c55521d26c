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


class ForbiddenError(DomainError):
    """Actor lacks the role or ownership required for the action"""
    error_code = "FORBIDDEN"
    http_status = 403


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class ExpenseNotFoundError(NotFoundError):
    """Expense not found"""
    error_code = "EXPENSE_NOT_FOUND"


class OrganizationNotFoundError(NotFoundError):
    """Organization not found"""
    error_code = "ORGANIZATION_NOT_FOUND"


class MembershipNotFoundError(NotFoundError):
    """Membership not found"""
    error_code = "MEMBERSHIP_NOT_FOUND"


class VoucherNotFoundError(NotFoundError):
    """Voucher not found"""
    error_code = "VOUCHER_NOT_FOUND"


class InviteNotFoundError(NotFoundError):
    """Invite or invite link not found"""
    error_code = "INVITE_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Concurrent modification detected; caller should refresh and retry"""
    error_code = "CONFLICT"
    http_status = 409


class InvalidTransitionError(DomainError):
    """Action is not legal from the expense's current status"""
    error_code = "INVALID_TRANSITION"
    http_status = 409


class DuplicateError(DomainError):
    """Resource or usage already recorded"""
    error_code = "DUPLICATE"
    http_status = 409


class LimitExceededError(DomainError):
    """A capped resource has no capacity left"""
    error_code = "LIMIT_EXCEEDED"
    http_status = 409


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class EmailSendError(ExternalServiceError):
    """Email sending failed"""
    error_code = "EMAIL_SEND_ERROR"


class DocumentGenerationError(ExternalServiceError):
    """Voucher PDF rendering or storage failed"""
    error_code = "DOCUMENT_GENERATION_ERROR"
