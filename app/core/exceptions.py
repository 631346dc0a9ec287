from typing import Optional

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)


class AppError(Exception):
    """Domain error carrying the HTTP status it maps to at the API boundary."""

    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(AppError):
    status_code = HTTP_400_BAD_REQUEST
    detail = "Invalid request"


class ConflictError(AppError):
    status_code = HTTP_400_BAD_REQUEST
    detail = "Conflict"


class NotFoundError(AppError):
    status_code = HTTP_404_NOT_FOUND
    detail = "Not found"


class UnauthorizedError(AppError):
    status_code = HTTP_401_UNAUTHORIZED
    detail = "Access token required"


class InvalidCredentialsError(UnauthorizedError):
    detail = "Invalid credentials"


class ForbiddenError(AppError):
    status_code = HTTP_403_FORBIDDEN
    detail = "Invalid or expired token"


class InvalidTokenError(AppError):
    status_code = HTTP_400_BAD_REQUEST
    detail = "Invalid or expired reset token"


class OtpError(ValidationError):
    pass


class OtpNotFound(OtpError):
    detail = "OTP not found or expired"


class OtpExpired(OtpError):
    detail = "OTP expired"


class OtpMismatch(OtpError):
    detail = "Invalid OTP"


class TransientInfraError(AppError):
    pass


class MailDeliveryError(TransientInfraError):
    detail = "Failed to send OTP"


class OAuthVerificationError(TransientInfraError):
    detail = "Google authentication failed"
