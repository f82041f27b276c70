from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Mapping, Any
import asyncio
import os
import posixpath
import sys

import docker
from docker.errors import DockerException, ImageNotFound, NotFound

from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.executors import CommandExecutor, DEFAULT_SHELL
from ybuild.builder.output import OutputDuplicator
from ybuild.common.config.constants import (
    ExecutionStrategy,
    CONTAINER_IDENTITY_LABEL,
    CONTAINER_PACKAGE_LABEL,
)
from ybuild.common.config.logging_config import get_logger
from ybuild.common.dto.build import ContainerDefinition
from ybuild.common.exceptions.build_exceptions import (
    ContainerLifecycleError,
    ExecutionError,
    CommandTimeoutError,
)


logger = get_logger(__name__)

CONTAINER_WORKSPACE = "/workspace"
KEEPALIVE_COMMAND = ["tail", "-f", "/dev/null"]


@dataclass
class ContainerHandle:
    id: str
    image: str
    name: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)


class ContainerRuntime(ABC):
    @abstractmethod
    async def find(self, identity: str) -> Optional[ContainerHandle]:
        raise NotImplementedError("Subclasses must implement find method")

    @abstractmethod
    async def remove(self, container_id: str) -> None:
        raise NotImplementedError("Subclasses must implement remove method")

    @abstractmethod
    async def create(
        self,
        definition: ContainerDefinition,
        package_name: str,
        identity: str,
        package_dir: str,
    ) -> ContainerHandle:
        raise NotImplementedError("Subclasses must implement create method")

    @abstractmethod
    async def start(self, handle: ContainerHandle) -> None:
        raise NotImplementedError("Subclasses must implement start method")

    @abstractmethod
    async def exec_to_stdout(
        self,
        handle: ContainerHandle,
        command: str,
        work_dir: str,
        environment: Mapping[str, str],
        stdout_fd: Optional[int] = None,
    ) -> int:
        raise NotImplementedError("Subclasses must implement exec_to_stdout method")


def parse_mounts(mounts: List[str], package_dir: str) -> Dict[str, Dict[str, str]]:
    volumes: Dict[str, Dict[str, str]] = {
        package_dir: {"bind": CONTAINER_WORKSPACE, "mode": "rw"},
    }
    for mount in mounts:
        parts = mount.split(":")
        if len(parts) < 2:
            raise ValueError(f"Mount must be host:container[:mode]: {mount!r}")
        host_path = parts[0]
        if not os.path.isabs(host_path):
            host_path = os.path.join(package_dir, host_path)
        mode = parts[2] if len(parts) > 2 else "rw"
        volumes[host_path] = {"bind": parts[1], "mode": mode}
    return volumes


def parse_ports(ports: List[str]) -> Dict[str, int]:
    bindings: Dict[str, int] = {}
    for port in ports:
        host_port, sep, container_port = port.partition(":")
        if not sep:
            container_port = host_port
        if "/" not in container_port:
            container_port = f"{container_port}/tcp"
        bindings[container_port] = int(host_port)
    return bindings


class DockerContainerRuntime(ContainerRuntime):
    def __init__(self, base_url: Optional[str] = None, client: Optional[Any] = None):
        self._base_url = base_url
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if self._base_url:
                self._client = docker.DockerClient(base_url=self._base_url)
            else:
                self._client = docker.from_env()
        return self._client

    async def find(self, identity: str) -> Optional[ContainerHandle]:
        containers = await asyncio.to_thread(
            self.client.containers.list,
            all=True,
            filters={"label": f"{CONTAINER_IDENTITY_LABEL}={identity}"},
        )
        if not containers:
            return None
        container = containers[0]
        image = container.attrs.get("Config", {}).get("Image", "")
        return ContainerHandle(
            id=container.id,
            image=image,
            name=container.name,
            labels=dict(container.labels or {}),
        )

    async def remove(self, container_id: str) -> None:
        def _remove() -> None:
            try:
                self.client.containers.get(container_id).remove(force=True)
            except NotFound:
                logger.debug(f"Container {container_id} already gone")

        await asyncio.to_thread(_remove)

    async def create(
        self,
        definition: ContainerDefinition,
        package_name: str,
        identity: str,
        package_dir: str,
    ) -> ContainerHandle:
        labels = {
            CONTAINER_IDENTITY_LABEL: identity,
            CONTAINER_PACKAGE_LABEL: package_name,
        }
        kwargs: Dict[str, Any] = {
            "command": definition.command or KEEPALIVE_COMMAND,
            "environment": definition.environment_dict(),
            "volumes": parse_mounts(definition.mounts, package_dir),
            "ports": parse_ports(definition.ports),
            "working_dir": CONTAINER_WORKSPACE,
            "labels": labels,
            "name": f"ybuild-{package_name}-{identity[:12]}",
            "detach": True,
        }

        def _create() -> Any:
            try:
                return self.client.containers.create(definition.image, **kwargs)
            except ImageNotFound:
                logger.info(f"Pulling image {definition.image}")
                self.client.images.pull(definition.image)
                return self.client.containers.create(definition.image, **kwargs)

        container = await asyncio.to_thread(_create)
        return ContainerHandle(id=container.id, image=definition.image, name=container.name, labels=labels)

    async def start(self, handle: ContainerHandle) -> None:
        await asyncio.to_thread(lambda: self.client.containers.get(handle.id).start())

    async def exec_to_stdout(
        self,
        handle: ContainerHandle,
        command: str,
        work_dir: str,
        environment: Mapping[str, str],
        stdout_fd: Optional[int] = None,
    ) -> int:
        api = self.client.api

        def _exec() -> int:
            exec_id = api.exec_create(
                handle.id,
                [DEFAULT_SHELL, "-c", command],
                stdout=True,
                stderr=True,
                workdir=work_dir,
                environment=dict(environment),
            )
            for chunk in api.exec_start(exec_id, stream=True):
                if stdout_fd is not None:
                    os.write(stdout_fd, chunk)
                else:
                    sys.stdout.buffer.write(chunk)
                    sys.stdout.buffer.flush()
            exit_code = api.exec_inspect(exec_id).get("ExitCode")
            if exit_code is None:
                raise DockerException(f"Exec {exec_id} in {handle.id} reported no exit code")
            return exit_code

        return await asyncio.to_thread(_exec)


async def materialize_container(
    runtime: ContainerRuntime,
    definition: ContainerDefinition,
    package_name: str,
    package_dir: str,
) -> ContainerHandle:
    """Replace any container left by a previous build and start a fresh one."""
    identity = definition.identity(package_name)

    try:
        existing = await runtime.find(identity)
    except DockerException as e:
        raise ContainerLifecycleError(
            f"Failed trying to find container: {e}",
            operation="find", image=definition.image, package=package_name, cause=e,
        )

    if existing is not None:
        logger.info(f"Found existing container {existing.id}, removing...")
        try:
            await runtime.remove(existing.id)
        except DockerException as e:
            raise ContainerLifecycleError(
                f"Unable to remove existing container: {e}",
                operation="remove", image=definition.image,
                container_id=existing.id, package=package_name, cause=e,
            )

    try:
        handle = await runtime.create(definition, package_name, identity, package_dir)
    except (DockerException, ValueError) as e:
        raise ContainerLifecycleError(
            f"Error creating build container: {e}",
            operation="create", image=definition.image, package=package_name, cause=e,
        )

    try:
        await runtime.start(handle)
    except DockerException as e:
        raise ContainerLifecycleError(
            f"Unable to start container {handle.id}: {e}",
            operation="start", image=definition.image,
            container_id=handle.id, package=package_name, cause=e,
        )

    logger.info(f"Building in container: {handle.id}")
    return handle


class ContainerExecutor(CommandExecutor):
    strategy = ExecutionStrategy.CONTAINER

    def __init__(
        self,
        runtime: ContainerRuntime,
        handle: ContainerHandle,
        package_dir: str,
        output: Optional[OutputDuplicator] = None,
        timeout_seconds: float = 0.0,
    ):
        self._runtime = runtime
        self._handle = handle
        self._package_dir = package_dir
        self._output = output
        self._timeout = timeout_seconds

    def container_path(self, work_dir: str) -> str:
        relative = os.path.relpath(work_dir, self._package_dir)
        if relative == "." or relative.startswith(".."):
            return CONTAINER_WORKSPACE
        return posixpath.join(CONTAINER_WORKSPACE, *relative.split(os.sep))

    async def execute(
        self,
        command: str,
        work_dir: str,
        environment: BuildEnvironment,
    ) -> None:
        stdout_fd = self._output.write_fd if self._output is not None else None
        exec_call = self._runtime.exec_to_stdout(
            self._handle,
            command,
            self.container_path(work_dir),
            environment.overrides,
            stdout_fd,
        )

        try:
            if self._timeout > 0:
                exit_code = await asyncio.wait_for(exec_call, timeout=self._timeout)
            else:
                exit_code = await exec_call
        except asyncio.TimeoutError:
            raise CommandTimeoutError(
                command=command,
                timeout_seconds=self._timeout,
                strategy=self.strategy.value,
            )
        except DockerException as e:
            raise ExecutionError(
                message=f"Unable to run command in container {self._handle.id}: {e}",
                command=command,
                strategy=self.strategy.value,
                details={"container_id": self._handle.id},
                cause=e,
            )

        if exit_code != 0:
            raise ExecutionError(
                message=f"Command failed with exit code {exit_code}",
                command=command,
                exit_code=exit_code,
                strategy=self.strategy.value,
                details={"container_id": self._handle.id},
            )

    async def close(self) -> None:
        try:
            await self._runtime.remove(self._handle.id)
        except DockerException as e:
            logger.warning(f"Unable to remove build container {self._handle.id}: {e}")
