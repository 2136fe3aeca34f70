"""
Custom exception classes for the civic reports application.
Provides structured error handling with machine-readable error codes.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes shared with the client apps"""

    # Authentication errors (401)
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_NOT_AUTHENTICATED = "AUTH_NOT_AUTHENTICATED"

    # Authorization errors (403)
    AUTHZ_FORBIDDEN = "AUTHZ_FORBIDDEN"
    AUTHZ_INSUFFICIENT_PERMISSIONS = "AUTHZ_INSUFFICIENT_PERMISSIONS"

    # Resource errors (404, 409)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    VALIDATION_REQUIRED_FIELD = "VALIDATION_REQUIRED_FIELD"

    # Image hosting errors (500)
    ASSET_UPLOAD_FAILED = "ASSET_UPLOAD_FAILED"

    # Server errors (500+)
    SERVER_ERROR = "SERVER_ERROR"
    SERVER_UNAVAILABLE = "SERVER_UNAVAILABLE"


class AppException(Exception):
    """
    Base exception class for application errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SERVER_ERROR,
        status_code: int = 500,
        field: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.field = field
        self.metadata = metadata or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to response dictionary"""
        response = {
            "success": False,
            "message": self.message,
            "code": self.code.value,
        }
        if self.field:
            response["field"] = self.field
        if self.metadata:
            response["metadata"] = self.metadata
        return response


# Authentication Errors (401)


class AuthenticationError(AppException):
    """Base authentication error"""

    def __init__(
        self,
        message: str = "Not authorized to access this route",
        code: ErrorCode = ErrorCode.AUTH_NOT_AUTHENTICATED,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=401,
        )


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password. Same message for both."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(
            message=message,
            code=ErrorCode.AUTH_INVALID_CREDENTIALS,
        )


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self, message: str = "Session has expired"):
        super().__init__(
            message=message,
            code=ErrorCode.AUTH_TOKEN_EXPIRED,
        )


class TokenInvalidError(AuthenticationError):
    """JWT token is invalid"""

    def __init__(self, message: str = "Not authorized, token failed"):
        super().__init__(
            message=message,
            code=ErrorCode.AUTH_TOKEN_INVALID,
        )


# Authorization Errors (403)


class AuthorizationError(AppException):
    """Base authorization error"""

    def __init__(
        self,
        message: str = "Not authorized to perform this action",
        code: ErrorCode = ErrorCode.AUTHZ_FORBIDDEN,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=403,
        )


class InsufficientPermissionsError(AuthorizationError):
    """User role is not allowed on this route"""

    def __init__(self, role: str, required_role: str):
        super().__init__(
            message=f"User role {role} is not authorized to access this route",
            code=ErrorCode.AUTHZ_INSUFFICIENT_PERMISSIONS,
        )
        self.metadata = {"required_role": required_role}


# Resource Errors (404, 409)


class NotFoundError(AppException):
    """Resource not found"""

    def __init__(
        self,
        message: str = "Requested resource not found",
        resource: str | None = None,
    ):
        metadata = {"resource": resource} if resource else None
        super().__init__(
            message=message,
            code=ErrorCode.RESOURCE_NOT_FOUND,
            status_code=404,
            metadata=metadata,
        )


class AlreadyExistsError(AppException):
    """Resource already exists"""

    def __init__(
        self,
        message: str = "Resource already exists",
        field: str | None = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.RESOURCE_ALREADY_EXISTS,
            status_code=409,
            field=field,
        )


# Validation Errors (400)


class ValidationError(AppException):
    """Validation error"""

    def __init__(
        self,
        message: str = "Please check the submitted data",
        field: str | None = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=400,
            field=field,
        )


class RequiredFieldError(ValidationError):
    """Required field missing"""

    def __init__(
        self,
        message: str = "This field is required",
        field: str | None = None,
    ):
        super().__init__(
            message=message,
            field=field,
            code=ErrorCode.VALIDATION_REQUIRED_FIELD,
        )


# Image hosting (500)


class UploadFailedError(AppException):
    """The image host rejected or never received an upload"""

    def __init__(self, message: str = "Image upload failed"):
        super().__init__(
            message=message,
            code=ErrorCode.ASSET_UPLOAD_FAILED,
            status_code=500,
        )
