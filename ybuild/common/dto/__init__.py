from ybuild.common.dto.base import ValueModel
from ybuild.common.dto.build import (
    BuildPhase,
    BuildFlags,
    BuildConfiguration,
    ContainerDefinition,
    CommandTimer,
    TargetTimer,
    split_assignment,
)
from ybuild.common.dto.build_log import BuildLog

__all__ = [
    "ValueModel",
    "BuildPhase",
    "BuildFlags",
    "BuildConfiguration",
    "ContainerDefinition",
    "CommandTimer",
    "TargetTimer",
    "split_assignment",
    "BuildLog",
]
