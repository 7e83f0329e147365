class AppException(Exception):
    """Base class for application errors"""

    def __init__(self, message: str, code: str = "APP_ERROR", status_code: int = 400):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class StorageError(AppException):
    """The code store could not be read or written. Safe to retry."""

    def __init__(self, message: str = "Verification storage is unavailable"):
        super().__init__(message, "STORAGE_ERROR", 503)


class DeliveryError(AppException):
    """A code was stored but the email could not be delivered. Offer a resend."""

    def __init__(self, message: str = "Failed to send verification email"):
        super().__init__(message, "DELIVERY_ERROR", 502)


class InvalidOrExpired(AppException):
    """Wrong, expired, superseded or already used code.

    One error for all of these so callers cannot tell which case occurred.
    """

    def __init__(self, message: str = "Invalid or expired verification code. Please request a new one."):
        super().__init__(message, "INVALID_OR_EXPIRED", 400)


class ProvisioningConflict(AppException):
    """Verification succeeded but the account could not be created or updated."""

    def __init__(self, message: str = "Verification can no longer be used. Please request a new code."):
        super().__init__(message, "PROVISIONING_CONFLICT", 409)


class RateLimitError(AppException):
    """Too many requests"""

    def __init__(self, message: str = "Too many requests", retry_after: int = 0):
        self.retry_after = retry_after
        super().__init__(message, "RATE_LIMITED", 429)


class IdentityProviderError(AppException):
    """The identity provider rejected an account operation"""

    def __init__(self, message: str = "Identity provider error"):
        super().__init__(message, "IDENTITY_PROVIDER_ERROR", 422)
