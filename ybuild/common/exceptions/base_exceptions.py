from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ErrorCode(str, Enum):
    UNKNOWN = "E0000"

    PROVISION_FAILED = "E1000"
    PROVISION_DOWNLOAD_ERROR = "E1001"
    PROVISION_EXTRACTION_ERROR = "E1002"
    PROVISION_UNRESOLVABLE_VERSION = "E1003"
    PROVISION_CACHE_WRITE_ERROR = "E1004"

    EXECUTION_FAILED = "E2000"
    EXECUTION_TIMEOUT = "E2001"
    EXECUTION_SPAWN_ERROR = "E2002"

    CONTAINER_LIFECYCLE_ERROR = "E3000"
    CONTAINER_FIND_FAILED = "E3001"
    CONTAINER_REMOVE_FAILED = "E3002"
    CONTAINER_CREATE_FAILED = "E3003"
    CONTAINER_START_FAILED = "E3004"

    UPLOAD_FAILED = "E4000"

    CONFIGURATION_ERROR = "E7000"
    INVALID_INPUT = "E7001"


class YBuildBaseException(Exception):
    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def with_context(self, **kwargs: Any) -> "YBuildBaseException":
        self.details.update(kwargs)
        return self


class RetryableException(YBuildBaseException):
    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
    ):
        super().__init__(message, error_code, details, cause)
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.retry_count = 0

    def should_retry(self) -> bool:
        return self.retry_count < self.max_retries

    def increment_retry(self) -> None:
        self.retry_count += 1


class NonRetryableException(YBuildBaseException):
    pass


class ConfigurationError(NonRetryableException):
    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        field_value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if field_name:
            details["field_name"] = field_name
        if field_value is not None:
            details["field_value"] = str(field_value)
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            cause=cause,
        )
        self.field_name = field_name
        self.field_value = field_value
