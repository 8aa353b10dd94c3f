"""
Custom Exception Hierarchy

Every error a route can surface is an AppException subclass. The exception handlers
in core.middleware render them into the standard response envelope.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    ALREADY_EXISTS = "ERR_1003"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    RATE_LIMITED = "ERR_1006"
    CONFLICT = "ERR_1007"

    # Wallet errors (2xxx)
    WALLET_NOT_FOUND = "ERR_2001"
    WALLET_NOT_SET_UP = "ERR_2002"
    INSUFFICIENT_BALANCE = "ERR_2003"
    INVALID_AMOUNT = "ERR_2004"
    INVALID_PIN = "ERR_2005"
    PIN_LOCKED = "ERR_2006"
    BALANCE_UPDATE_CONFLICT = "ERR_2007"
    WITHDRAWAL_LIMIT_EXCEEDED = "ERR_2008"
    TRANSACTION_NOT_FOUND = "ERR_2009"
    BANK_ACCOUNT_NOT_FOUND = "ERR_2010"

    # Promotion errors (3xxx)
    PROMOTION_NOT_FOUND = "ERR_3001"
    PROMOTION_INVALID_STATUS = "ERR_3002"
    PROPERTY_NOT_ELIGIBLE = "ERR_3003"

    # Creator tier errors (4xxx)
    SOCIAL_ACCOUNT_NOT_FOUND = "ERR_4001"
    UNSUPPORTED_PLATFORM = "ERR_4002"

    # Handover errors (6xxx)
    HANDOVER_NOT_FOUND = "ERR_6001"
    HANDOVER_INVALID_STATUS = "ERR_6002"
    HANDOVER_OBLIGATIONS_UNMET = "ERR_6003"

    # External service errors (5xxx)
    PAYMENT_GATEWAY_ERROR = "ERR_5001"
    SOCIAL_ANALYTICS_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render as the error half of the response envelope"""
        return {
            "success": False,
            "data": None,
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class AuthenticationException(AppException):
    """Missing, expired or invalid credentials"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class AuthorizationException(AppException):
    """Authenticated, but not allowed to perform this action"""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN,
            status_code=403,
        )


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any = None,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        message = f"{resource} not found"
        details = {"resource": resource}
        if identifier is not None:
            details["identifier"] = str(identifier)
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=404,
            details=details
        )


class ConflictException(AppException):
    """Request conflicts with the current state of a resource"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFLICT,
            status_code=409,
            details=details
        )


class RateLimitException(AppException):
    """Too many requests for one endpoint scope"""

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        super().__init__(
            message=message or "Too many requests. Please try again later.",
            error_code=ErrorCode.RATE_LIMITED,
            status_code=429,
            details={"retry_after_seconds": retry_after_seconds}
        )
        self.retry_after_seconds = retry_after_seconds


class WalletException(AppException):
    """Base exception for wallet-related errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        wallet_id: int | None = None,
        details: dict[str, Any] | None = None,
        status_code: int = 400,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        if wallet_id:
            self.details["wallet_id"] = wallet_id


class WalletNotSetUpError(WalletException):
    """Wallet missing, or its withdrawal PIN was never configured"""

    def __init__(self, message: str = "Wallet not set up. Please set up your wallet PIN first."):
        super().__init__(message=message, error_code=ErrorCode.WALLET_NOT_SET_UP)


class InsufficientBalanceError(WalletException):
    """Raised when the available balance cannot cover a debit"""

    def __init__(self, wallet_id: int, available: Any, required: Any):
        super().__init__(
            message="Insufficient balance",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            wallet_id=wallet_id,
            details={
                "available_balance": str(available),
                "required_amount": str(required),
            }
        )


class InvalidPinError(WalletException):
    def __init__(self, attempts_remaining: int):
        super().__init__(
            message=f"Invalid PIN. {attempts_remaining} attempt(s) remaining.",
            error_code=ErrorCode.INVALID_PIN,
            details={"attempts_remaining": attempts_remaining}
        )


class PinLockedError(WalletException):
    """PIN entry blocked until ``locked_until``"""

    def __init__(self, message: str, locked_until: Any):
        super().__init__(
            message=message,
            error_code=ErrorCode.PIN_LOCKED,
            details={"locked_until": str(locked_until)}
        )


class BalanceUpdateConflictError(WalletException):
    """The wallet row changed between read and write"""

    def __init__(self, wallet_id: int):
        super().__init__(
            message="Failed to update balance. Please try again.",
            error_code=ErrorCode.BALANCE_UPDATE_CONFLICT,
            wallet_id=wallet_id,
            status_code=409,
        )


class WithdrawalLimitError(WalletException):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.WITHDRAWAL_LIMIT_EXCEEDED,
            details=details
        )


class InvalidStatusTransitionError(AppException):
    """Raised when a lifecycle transition is not allowed from the current status"""

    def __init__(
        self,
        message: str,
        current_status: str,
        target_status: str,
        error_code: ErrorCode = ErrorCode.PROMOTION_INVALID_STATUS,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details={
                "current_status": current_status,
                "target_status": target_status,
            }
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None,
        status_code: int = 502,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        self.details["service"] = service_name

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ):
        """
        Build the exception from an HTTP response.

        Args:
            operation: provider operation name (e.g. transfer, transaction/verify)
            response: response object (httpx.Response)
            message: explicit message; defaults to the provider's own message or status
            max_response_chars: truncation for response_text in details
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class PaymentGatewayError(ExternalServiceException):
    """Raised when the payment gateway rejects or fails a call"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="paystack",
            message=f"Payment gateway error: {message}",
            error_code=ErrorCode.PAYMENT_GATEWAY_ERROR,
            details=details
        )


class SocialAnalyticsError(ExternalServiceException):
    """Raised when the social analytics provider cannot verify a profile"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="social_analytics",
            message=f"Social analytics error: {message}",
            error_code=ErrorCode.SOCIAL_ANALYTICS_ERROR,
            details=details
        )


class ServiceTimeoutError(ExternalServiceException):
    """Raised when external service times out"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds},
            status_code=503,
        )


def handle_error(exc: Exception) -> tuple[str, int]:
    """Map any exception to a client-facing message and HTTP status code."""
    if isinstance(exc, AppException):
        return exc.message, exc.status_code
    return "An unexpected error occurred", 500
