from datetime import datetime, timedelta
from typing import Optional, List, Dict, Tuple

from pydantic import Field, field_validator, model_validator

from ybuild.common.dto.base import ValueModel
from ybuild.common.config.constants import ExecutionStrategy
from ybuild.common.utils.hash_utils import compute_signature


def split_assignment(assignment: str) -> Tuple[str, str]:
    key, sep, value = assignment.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"Environment entry must be KEY=VALUE: {assignment!r}")
    return key.strip(), value


def _validate_assignments(entries: List[str]) -> List[str]:
    for entry in entries:
        split_assignment(entry)
    return entries


class ContainerDefinition(ValueModel):
    image: str = Field(default="", description="Image reference, e.g. golang:1.21")
    mounts: List[str] = Field(default_factory=list)
    ports: List[str] = Field(default_factory=list)
    environment: List[str] = Field(default_factory=list)
    command: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: List[str]) -> List[str]:
        return _validate_assignments(v)

    def identity(self, package_name: str) -> str:
        return compute_signature(package_name, self.model_dump())[:32]

    def environment_dict(self) -> Dict[str, str]:
        return dict(split_assignment(entry) for entry in self.environment)


class BuildPhase(ValueModel):
    name: str = Field(default="default")
    commands: List[str] = Field(default_factory=list)
    container: Optional[ContainerDefinition] = None
    tools: List[str] = Field(default_factory=list)
    root: str = Field(default="", description="Working directory override, relative to the package")
    environment: List[str] = Field(default_factory=list)
    sandbox: bool = False
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: List[str]) -> List[str]:
        return _validate_assignments(v)

    @property
    def has_container(self) -> bool:
        return self.container is not None and bool(self.container.image)

    @property
    def is_empty(self) -> bool:
        return len(self.commands) == 0

    def environment_assignments(self) -> List[Tuple[str, str]]:
        return [split_assignment(entry) for entry in self.environment]


class BuildFlags(ValueModel):
    host_only: bool = False
    clean_build: bool = False
    dependencies_only: bool = False


class BuildConfiguration(ValueModel):
    phase: BuildPhase
    package_name: str
    target_dir: str
    sandboxed: bool = False
    exec_prefix: str = ""
    flags: BuildFlags = Field(default_factory=BuildFlags)

    @classmethod
    def resolve(
        cls,
        phase: BuildPhase,
        package_name: str,
        target_dir: str,
        flags: Optional[BuildFlags] = None,
        exec_prefix: str = "",
        global_sandbox: bool = False,
    ) -> "BuildConfiguration":
        return cls(
            phase=phase,
            package_name=package_name,
            target_dir=target_dir,
            sandboxed=phase.sandbox or global_sandbox,
            exec_prefix=exec_prefix,
            flags=flags or BuildFlags(),
        )

    @property
    def strategy(self) -> ExecutionStrategy:
        if self.phase.has_container and not self.flags.host_only:
            return ExecutionStrategy.CONTAINER
        if self.sandboxed:
            return ExecutionStrategy.SANDBOX
        return ExecutionStrategy.HOST


class CommandTimer(ValueModel):
    command: str
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def validate_ordering(self) -> "CommandTimer":
        if self.end_time < self.start_time:
            raise ValueError("CommandTimer end_time precedes start_time")
        return self

    @property
    def elapsed(self) -> timedelta:
        return self.end_time - self.start_time


class TargetTimer(ValueModel):
    name: str
    timers: List[CommandTimer] = Field(default_factory=list)
