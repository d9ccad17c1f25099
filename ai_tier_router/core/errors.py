"""
Router error taxonomy.

Admission and credit failures are raised before any provider call.
Provider failures carry a kind that decides whether they are retried.
"""

from enum import Enum


class ErrorKind(Enum):
    """Terminal non-success outcomes reported on an ExecutionResult."""
    ADMISSION_DENIED = "admission_denied"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    PROVIDER_NON_RETRYABLE = "provider_non_retryable"
    TOTAL_FAILURE = "total_failure"


class ProviderErrorKind(Enum):
    """Classification of a generation provider failure."""
    TRANSIENT = "transient"
    PERMISSION = "permission"
    QUOTA = "quota"


class RouterError(Exception):
    """Base class for all router errors."""
    kind: ErrorKind = ErrorKind.TOTAL_FAILURE


class AdmissionDenied(RouterError):
    """Raised when a caller exceeds the rate limit."""
    kind = ErrorKind.ADMISSION_DENIED

    def __init__(self, caller_id: str, reset_in_ms: int):
        super().__init__(
            f"Rate limit exceeded for {caller_id}. Try again in {reset_in_ms / 1000:.1f}s"
        )
        self.caller_id = caller_id
        self.reset_in_ms = reset_in_ms


class InsufficientCredits(RouterError):
    """Raised when a caller cannot afford the requested tier."""
    kind = ErrorKind.INSUFFICIENT_CREDITS

    def __init__(self, caller_id: str, required: int, available: int):
        super().__init__(f"Insufficient credits. Required: {required}, Available: {available}")
        self.caller_id = caller_id
        self.required = required
        self.available = available


class ProviderError(RouterError):
    """Raised by a generation provider when a call fails."""

    def __init__(self, message: str, kind: ProviderErrorKind = ProviderErrorKind.TRANSIENT):
        super().__init__(message)
        self.provider_kind = kind

    @property
    def retryable(self) -> bool:
        return self.provider_kind == ProviderErrorKind.TRANSIENT


class ProviderNonRetryable(RouterError):
    """A permission or quota failure surfaced without retrying."""
    kind = ErrorKind.PROVIDER_NON_RETRYABLE

    def __init__(self, cause: ProviderError):
        super().__init__(str(cause))
        self.cause = cause


class TotalFailure(RouterError):
    """Retries and the fallback model were all exhausted."""
    kind = ErrorKind.TOTAL_FAILURE

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


# Signatures that mark an untyped provider failure as non-retryable
NON_RETRYABLE_SIGNATURES = {
    "PERMISSION_DENIED": ProviderErrorKind.PERMISSION,
    "INVALID_API_KEY": ProviderErrorKind.PERMISSION,
    "quota": ProviderErrorKind.QUOTA,
}


def classify_provider_error(error: BaseException) -> ProviderError:
    """Normalize any provider exception into a ProviderError.

    Typed ProviderErrors pass through unchanged. Anything else is matched
    against the known non-retryable message signatures and otherwise
    treated as transient.

    Args:
        error: Exception raised by the provider call

    Returns:
        ProviderError carrying the detected kind
    """
    if isinstance(error, ProviderError):
        return error
    message = str(error) or type(error).__name__
    for signature, kind in NON_RETRYABLE_SIGNATURES.items():
        if signature in message:
            return ProviderError(message, kind)
    return ProviderError(message, ProviderErrorKind.TRANSIENT)
