from ybuild.common.exceptions.base_exceptions import (
    YBuildBaseException,
    ErrorCode,
    RetryableException,
    NonRetryableException,
    ConfigurationError,
)
from ybuild.common.exceptions.provision_exceptions import (
    ProvisionError,
    DownloadError,
    ExtractionError,
    UnresolvableVersionError,
    CacheWriteError,
)
from ybuild.common.exceptions.build_exceptions import (
    BuildException,
    ExecutionError,
    CommandTimeoutError,
    ContainerLifecycleError,
    UploadError,
)

__all__ = [
    "YBuildBaseException",
    "ErrorCode",
    "RetryableException",
    "NonRetryableException",
    "ConfigurationError",
    "ProvisionError",
    "DownloadError",
    "ExtractionError",
    "UnresolvableVersionError",
    "CacheWriteError",
    "BuildException",
    "ExecutionError",
    "CommandTimeoutError",
    "ContainerLifecycleError",
    "UploadError",
]
