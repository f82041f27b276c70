from typing import Optional, Dict, Any

from ybuild.common.exceptions.base_exceptions import (
    YBuildBaseException,
    RetryableException,
    ErrorCode,
)


def _tool_details(
    details: Optional[Dict[str, Any]],
    tool: Optional[str],
    version: Optional[str],
) -> Dict[str, Any]:
    details = details or {}
    if tool:
        details["tool"] = tool
    if version:
        details["version"] = version
    return details


class ProvisionError(YBuildBaseException):
    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PROVISION_FAILED,
        tool: Optional[str] = None,
        version: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, error_code, _tool_details(details, tool, version), cause)
        self.tool = tool
        self.version = version


class DownloadError(ProvisionError, RetryableException):
    def __init__(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        tool: Optional[str] = None,
        version: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = _tool_details(details, tool, version)
        details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        RetryableException.__init__(
            self,
            message,
            error_code=ErrorCode.PROVISION_DOWNLOAD_ERROR,
            details=details,
            cause=cause,
        )
        self.tool = tool
        self.version = version
        self.url = url
        self.status_code = status_code
        if status_code is not None and 400 <= status_code < 500:
            # a missing artifact will not appear on retry
            self.max_retries = 0


class ExtractionError(ProvisionError):
    def __init__(
        self,
        message: str,
        archive_path: Optional[str] = None,
        tool: Optional[str] = None,
        version: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if archive_path:
            details["archive_path"] = archive_path
        super().__init__(
            message,
            error_code=ErrorCode.PROVISION_EXTRACTION_ERROR,
            tool=tool,
            version=version,
            details=details,
            cause=cause,
        )
        self.archive_path = archive_path


class UnresolvableVersionError(ProvisionError):
    def __init__(
        self,
        message: str,
        tool: Optional[str] = None,
        version: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            error_code=ErrorCode.PROVISION_UNRESOLVABLE_VERSION,
            tool=tool,
            version=version,
            details=details,
            cause=cause,
        )


class CacheWriteError(ProvisionError):
    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        tool: Optional[str] = None,
        version: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if path:
            details["path"] = path
        super().__init__(
            message,
            error_code=ErrorCode.PROVISION_CACHE_WRITE_ERROR,
            tool=tool,
            version=version,
            details=details,
            cause=cause,
        )
        self.path = path
