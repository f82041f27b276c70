from ybuild.common.config.settings import Settings, get_settings
from ybuild.common.config.logging_config import (
    setup_logging,
    get_logger,
    get_build_logger,
    get_tool_logger,
)
from ybuild.common.config.constants import (
    DispatchState,
    ExecutionStrategy,
    ArchiveFormat,
    PKGDIR_PLACEHOLDER,
    DEFAULT_BUILD_TARGET,
    TIME_FORMAT,
)

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "get_build_logger",
    "get_tool_logger",
    "DispatchState",
    "ExecutionStrategy",
    "ArchiveFormat",
    "PKGDIR_PLACEHOLDER",
    "DEFAULT_BUILD_TARGET",
    "TIME_FORMAT",
]
