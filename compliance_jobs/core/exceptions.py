"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error)
        self.status_code = status_code


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class JobError(AppError):
    """Raised when a background job cannot be started or inspected."""
    pass


class JobNotFoundError(JobError):
    """Raised when no workflow run exists for a job id."""
    pass


class SyncProviderError(JobError):
    """Raised when a provider employee sync fails."""
    pass


class EmailDeliveryError(JobError):
    """Raised when an email cannot be handed to the SMTP server."""
    pass
