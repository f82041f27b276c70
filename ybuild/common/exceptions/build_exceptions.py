from typing import Optional, Dict, Any

from ybuild.common.exceptions.base_exceptions import (
    YBuildBaseException,
    NonRetryableException,
    ErrorCode,
)


class BuildException(YBuildBaseException):
    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.EXECUTION_FAILED,
        package: Optional[str] = None,
        phase: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if package:
            details["package"] = package
        if phase:
            details["phase"] = phase
        super().__init__(message, error_code, details, cause)
        self.package = package
        self.phase = phase


class ExecutionError(BuildException):
    def __init__(
        self,
        message: str,
        command: str,
        exit_code: Optional[int] = None,
        strategy: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.EXECUTION_FAILED,
        package: Optional[str] = None,
        phase: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        details["command"] = command
        if exit_code is not None:
            details["exit_code"] = exit_code
        if strategy:
            details["strategy"] = strategy
        super().__init__(
            message=message,
            error_code=error_code,
            package=package,
            phase=phase,
            details=details,
            cause=cause,
        )
        self.command = command
        self.exit_code = exit_code
        self.strategy = strategy


class CommandTimeoutError(ExecutionError):
    def __init__(
        self,
        command: str,
        timeout_seconds: float,
        strategy: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message=f"Command timed out after {timeout_seconds}s: {command}",
            command=command,
            strategy=strategy,
            error_code=ErrorCode.EXECUTION_TIMEOUT,
            details=details,
        )
        self.timeout_seconds = timeout_seconds


class ContainerLifecycleError(BuildException):
    OPERATION_CODES = {
        "find": ErrorCode.CONTAINER_FIND_FAILED,
        "remove": ErrorCode.CONTAINER_REMOVE_FAILED,
        "create": ErrorCode.CONTAINER_CREATE_FAILED,
        "start": ErrorCode.CONTAINER_START_FAILED,
    }

    def __init__(
        self,
        message: str,
        operation: str,
        image: Optional[str] = None,
        container_id: Optional[str] = None,
        package: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        details["operation"] = operation
        if image:
            details["image"] = image
        if container_id:
            details["container_id"] = container_id
        super().__init__(
            message=message,
            error_code=self.OPERATION_CODES.get(operation, ErrorCode.CONTAINER_LIFECYCLE_ERROR),
            package=package,
            details=details,
            cause=cause,
        )
        self.operation = operation
        self.image = image
        self.container_id = container_id


class UploadError(NonRetryableException):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500]
        super().__init__(
            message=message,
            error_code=ErrorCode.UPLOAD_FAILED,
            details=details,
            cause=cause,
        )
        self.status_code = status_code
        self.response_body = response_body
