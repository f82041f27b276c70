from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.output import (
    OutputDuplicator,
    OutputSink,
    ConsoleSink,
    BufferSink,
    CaptureLogHandler,
)
from ybuild.builder.executors import (
    CommandExecutor,
    HostExecutor,
    SandboxExecutor,
)
from ybuild.builder.container import (
    ContainerRuntime,
    ContainerHandle,
    DockerContainerRuntime,
    ContainerExecutor,
    materialize_container,
)

__all__ = [
    "BuildEnvironment",
    "OutputDuplicator",
    "OutputSink",
    "ConsoleSink",
    "BufferSink",
    "CaptureLogHandler",
    "CommandExecutor",
    "HostExecutor",
    "SandboxExecutor",
    "ContainerRuntime",
    "ContainerHandle",
    "DockerContainerRuntime",
    "ContainerExecutor",
    "materialize_container",
]
