"""
Custom exceptions for the application.
"""

from typing import Any, Dict, Optional, List
from http import HTTPStatus


class AppException(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Error message
        status_code: HTTP status code
        code: Application error code
        details: Additional error details
    """

    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details
            }
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(AppException):
    """Raised when there's a configuration error."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        config_key: Optional[str] = None
    ):
        if config_key:
            details = details or {}
            details["config_key"] = config_key
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="CONFIGURATION_ERROR",
            details=details
        )


class SecurityError(AppException):
    """Raised when there's a security-related error."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        security_context: Optional[str] = None
    ):
        if security_context:
            details = details or {}
            details["security_context"] = security_context
        super().__init__(
            message=message,
            status_code=HTTPStatus.UNAUTHORIZED,
            code="SECURITY_ERROR",
            details=details
        )


class ValidationError(AppException):
    """Raised when data validation fails."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        field_errors: Optional[Dict[str, List[str]]] = None
    ):
        if field_errors:
            details = details or {}
            details["field_errors"] = field_errors
        super().__init__(
            message=message,
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            code="VALIDATION_ERROR",
            details=details
        )


class DatabaseError(AppException):
    """Raised when there's a database error."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None
    ):
        if operation:
            details = details or {}
            details["operation"] = operation
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="DATABASE_ERROR",
            details=details
        )


class ExternalServiceError(AppException):
    """Raised when there's an error with an external service."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        service_name: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        if service_name:
            details = details or {}
            details["service_name"] = service_name
        if status_code:
            details = details or {}
            details["status_code"] = status_code

        http_status = HTTPStatus.BAD_GATEWAY
        if status_code and 400 <= status_code < 500:
            http_status = HTTPStatus.BAD_REQUEST

        super().__init__(
            message=message,
            status_code=http_status,
            code="EXTERNAL_SERVICE_ERROR",
            details=details
        )


class SettlementError(ExternalServiceError):
    """Raised when the external payout relay rejects or cannot be reached."""

    def __init__(
        self,
        message: str,
        batch_id: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if batch_id:
            details["batch_id"] = batch_id
        super().__init__(
            message=message,
            details=details,
            service_name="settlement",
            status_code=status_code
        )
        self.code = "SETTLEMENT_ERROR"


class NotFoundError(AppException):
    """Raised when a resource is not found."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None
    ):
        if resource_type:
            details = details or {}
            details["resource_type"] = resource_type
        if resource_id:
            details = details or {}
            details["resource_id"] = resource_id
        super().__init__(
            message=message,
            status_code=HTTPStatus.NOT_FOUND,
            code="NOT_FOUND",
            details=details
        )


class AuthenticationError(SecurityError):
    """Raised when authentication fails."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details=details,
            security_context="authentication"
        )


class RankingUnavailableError(AppException):
    """Raised when a ranking strategy has no real scoring source behind it."""

    def __init__(self, message: str, strategy: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=HTTPStatus.NOT_IMPLEMENTED,
            code="RANKING_UNAVAILABLE",
            details={"strategy": strategy} if strategy else None
        )


# ---------------------------------------------------------------------------
# Reward ledger errors
# ---------------------------------------------------------------------------


class RewardLedgerError(AppException):
    """
    Base class for every rejection raised by the reward ledger.

    All of them are raised before the ledger is mutated, so a caller can
    fix the input and resubmit without reconciling anything.
    """

    status_code_default = HTTPStatus.BAD_REQUEST
    code_default = "REWARD_LEDGER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=self.status_code_default,
            code=self.code_default,
            details=details
        )


class MalformedBatchError(RewardLedgerError):
    """Empty batch, mismatched parallel arrays, or incomplete grants."""

    code_default = "MALFORMED_BATCH"


class InvalidWeekError(RewardLedgerError):
    """A grant references a week outside the campaign."""

    code_default = "INVALID_WEEK"


class UnknownCategoryError(RewardLedgerError):
    """A grant references a category the campaign does not define."""

    code_default = "UNKNOWN_CATEGORY"


class CategoryCapExceededError(RewardLedgerError):
    """More grants for a category and week than the weekly cap allows."""

    code_default = "CATEGORY_CAP_EXCEEDED"


class BudgetExceededError(RewardLedgerError):
    """The batch would push total allocations past the maximum budget."""

    status_code_default = HTTPStatus.CONFLICT
    code_default = "BUDGET_EXCEEDED"


class DuplicateProofError(RewardLedgerError):
    """A proof was already consumed, or repeats inside the batch."""

    status_code_default = HTTPStatus.CONFLICT
    code_default = "DUPLICATE_PROOF"

    def __init__(self, message: str, proofs: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        details = details or {}
        self.proofs = list(proofs or [])
        details.setdefault("proofs", self.proofs)
        super().__init__(message, details)


class CampaignPausedError(RewardLedgerError):
    """The campaign is paused by its owner."""

    status_code_default = HTTPStatus.CONFLICT
    code_default = "CAMPAIGN_PAUSED"


class NothingToClaimError(RewardLedgerError):
    """The recipient has no claimable balance. Benign, no retry needed."""

    status_code_default = HTTPStatus.CONFLICT
    code_default = "NOTHING_TO_CLAIM"


class InsufficientFundsError(RewardLedgerError):
    """Funds on hand cannot cover the payout. Needs an admin top-up first."""

    status_code_default = HTTPStatus.PAYMENT_REQUIRED
    code_default = "INSUFFICIENT_FUNDS"


class UnauthorizedError(RewardLedgerError):
    """Caller is not allowed to perform an owner-only or recipient-only operation."""

    status_code_default = HTTPStatus.FORBIDDEN
    code_default = "UNAUTHORIZED"


class OverpayInvariantViolation(RewardLedgerError):
    """
    Paid total would exceed the allocated total.

    Unreachable through the claim path; seeing it means the ledger state
    is inconsistent, so the ledger halts instead of continuing.
    """

    status_code_default = HTTPStatus.INTERNAL_SERVER_ERROR
    code_default = "OVERPAY_INVARIANT_VIOLATION"


class LedgerHaltedError(RewardLedgerError):
    """The ledger refused a mutation because it halted on a fatal error."""

    status_code_default = HTTPStatus.SERVICE_UNAVAILABLE
    code_default = "LEDGER_HALTED"
