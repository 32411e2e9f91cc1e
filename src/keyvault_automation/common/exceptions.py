"""
Exception types and error classification for keyvault_automation.

Provides:
- ErrorCategory enum describing how a failure should be treated
- Typed exception hierarchy for configuration, certificate, auth and store errors
- Error classification utilities

Nothing in this package retries on its own. Categories exist so the calling
test harness can decide what to do with a failure.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    Classification of error types.

    Categories:
        TRANSIENT: Temporary failures that may succeed if the caller retries
                   (e.g., network timeouts, 429/503 from the store)
        AUTH: Authentication failures (no token, rejected credentials, 401)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., bad configuration, missing certificate, 403/404)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class SecretsProviderError(Exception):
    """
    Base exception for all secrets provider errors.

    Attributes:
        message: Human-readable error description
        category: Error classification
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether a caller-side retry could plausibly succeed."""
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(SecretsProviderError):
    """Missing or invalid provider configuration."""

    category = ErrorCategory.PERMANENT


class UnsupportedAuthModeError(ConfigurationError):
    """Configured authType is not one of the recognized modes."""

    def __init__(self, auth_type: Optional[str]):
        super().__init__(
            f"Unsupported Key Vault authentication type: {auth_type!r}",
            context={"auth_type": auth_type},
        )
        self.auth_type = auth_type


class CertificateNotFoundError(SecretsProviderError):
    """Configured thumbprint matches no certificate in the store."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        thumbprint: str,
        store_location: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        message = f"No certificate found with thumbprint {thumbprint}"
        if store_location:
            message = f"{message} in {store_location}"
        super().__init__(
            message,
            cause=cause,
            context={"thumbprint": thumbprint, "store_location": store_location},
        )
        self.thumbprint = thumbprint
        self.store_location = store_location


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthenticationError(SecretsProviderError):
    """Identity provider returned no token or rejected the request."""

    category = ErrorCategory.AUTH


# =============================================================================
# Secret Store Errors
# =============================================================================


class SecretStoreError(SecretsProviderError):
    """
    Secret store call failed.

    Category is derived from the HTTP status when one is available.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        if status_code is not None:
            self.category = classify_http_status(status_code)
        elif cause is not None:
            self.category = classify_exception(cause)


class SecretNotFoundError(SecretStoreError):
    """Secret (or secret version) does not exist in the vault (404)."""


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """
    Classify HTTP status code into error category.

    Args:
        status_code: HTTP response status

    Returns:
        Appropriate ErrorCategory
    """
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    if isinstance(exc, SecretsProviderError):
        return exc.category

    # azure-core errors carry the response status
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return classify_http_status(status_code)

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    if "clientauthenticationerror" in exc_type or "credentialunavailable" in exc_type:
        return ErrorCategory.AUTH

    connection_markers = (
        "connectionerror",
        "servicerequesterror",
        "connection refused",
        "connection reset",
        "name resolution",
        "dns",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    if "unauthorized" in exc_str or "invalid token" in exc_str:
        return ErrorCategory.AUTH

    if "forbidden" in exc_str or "not found" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN
