"""
Domain errors for the auth service.

Each error carries the HTTP status and a stable machine-readable code; the
exception handlers render them as {"success": false, "error": code, "message": text}.
"""
from fastapi import status


class AuthServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.error_code, "message": self.message}


class ValidationError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidOTPError(ValidationError):
    error_code = "INVALID_OTP"
    default_message = "Invalid OTP. Please try again."


class RateLimitError(AuthServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMITED"
    default_message = "Too many OTP requests, please try again later"

    def __init__(self, message: str | None = None, retry_after_seconds: int = 0):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["retry_after_seconds"] = self.retry_after_seconds
        return payload


class NotFoundError(AuthServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class OTPNotFoundError(NotFoundError):
    # The code is part of the request, so a missing code is a client error
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "OTP_NOT_FOUND"
    default_message = "OTP expired or not found. Please request a new one."


class UserNotFoundError(NotFoundError):
    error_code = "USER_NOT_FOUND"
    default_message = "User not found"


class AuthError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHORIZED"
    default_message = "Invalid or expired token"


class ConflictError(AuthServiceError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    default_message = "Conflicting request"


class InternalError(AuthServiceError):
    default_message = "Something went wrong. Please try again."
