"""Admin API error types.

The router translates engine errors into these; the handlers in
:mod:`bookmark_sync.api.error_handlers` render them in the error envelope.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    REFRESH_FAILED = "REFRESH_FAILED"


class ErrorType(str, Enum):
    """Coarse category a client can branch on."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    EXTERNAL_SERVICE = "external_service"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    PROCESSING = "processing"
    INTERNAL = "internal"


class APIException(Exception):
    """Base class; subclasses pin the code, type, HTTP status and retryability."""

    code: ClassVar[ErrorCode] = ErrorCode.INTERNAL_ERROR
    error_type: ClassVar[ErrorType] = ErrorType.INTERNAL
    status_code: ClassVar[int] = 500
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthenticationError(APIException):
    code = ErrorCode.UNAUTHORIZED
    error_type = ErrorType.AUTHENTICATION
    status_code = 401


class ConfigurationError(APIException):
    """The endpoint cannot run with the current configuration."""

    code = ErrorCode.CONFIGURATION_ERROR
    error_type = ErrorType.CONFIGURATION
    status_code = 503


class StorageUnavailableError(APIException):
    code = ErrorCode.STORAGE_ERROR
    error_type = ErrorType.STORAGE
    status_code = 503
    retryable = True


class ExternalAPIError(APIException):
    """The upstream bookmark source failed."""

    code = ErrorCode.EXTERNAL_API_ERROR
    error_type = ErrorType.EXTERNAL_SERVICE
    status_code = 502
    retryable = True

    def __init__(self, service_name: str, message: str | None = None) -> None:
        text = f"{service_name} request failed"
        if message:
            text = f"{text}: {message}"
        super().__init__(text, {"service": service_name})


class RefreshFailedError(APIException):
    """The refresh stopped while building derived data; not a transient fault."""

    code = ErrorCode.REFRESH_FAILED
    error_type = ErrorType.PROCESSING
    status_code = 500
