from enum import Enum
from typing import Final


class DispatchState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExecutionStrategy(str, Enum):
    HOST = "host"
    SANDBOX = "sandbox"
    CONTAINER = "container"


class ArchiveFormat(str, Enum):
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    TAR_BZ2 = "tar.bz2"
    ZIP = "zip"


PKGDIR_PLACEHOLDER: Final[str] = "{PKGDIR}"
DEFAULT_BUILD_TARGET: Final[str] = "default"
TIME_FORMAT: Final[str] = "%H:%M:%S %Z"

PATH_VARIABLE: Final[str] = "PATH"
CONTAINER_IDENTITY_LABEL: Final[str] = "ybuild.identity"
CONTAINER_PACKAGE_LABEL: Final[str] = "ybuild.package"
INSTALL_COMPLETE_MARKER: Final[str] = ".ybuild-complete"

BUILD_LOGS_API_PATH: Final[str] = "/buildlogs"
