from dataclasses import dataclass, field
from typing import Optional, List, Callable
import asyncio
import os

from ybuild.builder.container import (
    ContainerRuntime,
    ContainerExecutor,
    DockerContainerRuntime,
    materialize_container,
)
from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.executors import CommandExecutor, HostExecutor, SandboxExecutor
from ybuild.builder.output import OutputDuplicator
from ybuild.buildpacks.provisioner import ToolProvisioner
from ybuild.common.config.constants import DispatchState, ExecutionStrategy
from ybuild.common.config.logging_config import get_build_logger
from ybuild.common.config.settings import Settings, get_settings
from ybuild.common.dto.build import BuildConfiguration, CommandTimer
from ybuild.common.exceptions.base_exceptions import YBuildBaseException
from ybuild.common.exceptions.build_exceptions import ExecutionError
from ybuild.common.exceptions.provision_exceptions import ProvisionError
from ybuild.common.utils.time_utils import local_now


CHANGE_DIRECTORY_PREFIX = "cd "


@dataclass
class DispatchResult:
    timers: List[CommandTimer] = field(default_factory=list)
    error: Optional[Exception] = None
    state: DispatchState = DispatchState.NOT_STARTED
    strategy: Optional[ExecutionStrategy] = None

    @property
    def succeeded(self) -> bool:
        return self.state == DispatchState.SUCCEEDED and self.error is None


def parse_change_directory(command: str) -> Optional[str]:
    stripped = command.strip()
    if not stripped.startswith(CHANGE_DIRECTORY_PREFIX):
        return None
    return stripped[len(CHANGE_DIRECTORY_PREFIX):].strip()


class BuildDispatcher:
    """Runs the commands of one resolved phase, one after another.

    ``dispatch`` never raises build errors: the timers gathered so far and
    the first fatal error are returned together so callers can always render
    partial progress.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provisioner: Optional[ToolProvisioner] = None,
        output: Optional[OutputDuplicator] = None,
        container_runtime: Optional[ContainerRuntime] = None,
        executor_factory: Optional[Callable[[ExecutionStrategy], CommandExecutor]] = None,
        base_environment: Optional[BuildEnvironment] = None,
    ):
        self._settings = settings or get_settings()
        self._provisioner = provisioner or ToolProvisioner(self._settings)
        self._output = output
        self._container_runtime = container_runtime
        self._executor_factory = executor_factory
        self._base_environment = base_environment
        self._state = DispatchState.NOT_STARTED

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def container_runtime(self) -> ContainerRuntime:
        if self._container_runtime is None:
            self._container_runtime = DockerContainerRuntime(self._settings.docker_base_url)
        return self._container_runtime

    def create_executor(self, strategy: ExecutionStrategy) -> CommandExecutor:
        if self._executor_factory is not None:
            return self._executor_factory(strategy)

        timeout = self._settings.command_timeout_seconds
        if strategy == ExecutionStrategy.SANDBOX:
            return SandboxExecutor(
                self._settings.sandbox_command,
                output=self._output,
                timeout_seconds=timeout,
            )
        return HostExecutor(output=self._output, timeout_seconds=timeout)

    async def dispatch(self, config: BuildConfiguration) -> DispatchResult:
        if self._state == DispatchState.RUNNING:
            raise RuntimeError("BuildDispatcher is already running a phase")

        phase = config.phase
        logger = get_build_logger(config.package_name, phase.name)
        strategy = config.strategy
        result = DispatchResult(strategy=strategy)
        self._set_state(result, DispatchState.RUNNING)

        if phase.is_empty:
            logger.warning(f"Build phase {phase.name} has no commands")
            self._set_state(result, DispatchState.SUCCEEDED)
            return result

        environment = self._base_environment.copy() if self._base_environment else BuildEnvironment()
        executor: Optional[CommandExecutor] = None

        try:
            if strategy == ExecutionStrategy.CONTAINER:
                tools = self._provisioner.resolve(config)
                if tools:
                    logger.info(
                        f"Expecting {', '.join(f'{t.name}:{t.version}' for t in tools)} "
                        f"in image {phase.container.image}"
                    )
            else:
                await self._provisioner.provision(config, environment, output=self._output)

            # declared variables win over whatever the tools configured
            environment.apply_assignments(phase.environment_assignments(), config.target_dir)

            if config.flags.dependencies_only:
                logger.info("Dependencies installed, skipping build commands")
                self._set_state(result, DispatchState.SUCCEEDED)
                return result

            if strategy == ExecutionStrategy.CONTAINER:
                logger.info(f"Invoking build in a container: {phase.container.image}")
                handle = await materialize_container(
                    self.container_runtime,
                    phase.container,
                    config.package_name,
                    config.target_dir,
                )
                executor = ContainerExecutor(
                    self.container_runtime,
                    handle,
                    config.target_dir,
                    output=self._output,
                    timeout_seconds=self._settings.command_timeout_seconds,
                )
            else:
                if strategy == ExecutionStrategy.SANDBOX:
                    logger.info("Running build in a sandbox")
                executor = self.create_executor(strategy)

            await self._run_commands(config, executor, environment, result.timers)
            self._set_state(result, DispatchState.SUCCEEDED)

        except ProvisionError as e:
            logger.error(f"Unable to provision tools for {phase.name}: {e}", extra={"tool": e.tool, "tool_version": e.version})
            self._fail(result, e)
        except ExecutionError as e:
            logger.error(f"Failed to run {e.command}: {e}", extra={"command": e.command})
            self._fail(result, e)
        except YBuildBaseException as e:
            logger.error(f"Build phase {phase.name} failed: {e}", extra={"error": e.to_dict()})
            self._fail(result, e)
        except asyncio.CancelledError:
            logger.warning(f"Build phase {phase.name} cancelled")
            self._state = DispatchState.FAILED
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in build phase {phase.name}: {e}")
            self._fail(result, e)
        finally:
            if executor is not None:
                await executor.close()

        return result

    async def _run_commands(
        self,
        config: BuildConfiguration,
        executor: CommandExecutor,
        environment: BuildEnvironment,
        timers: List[CommandTimer],
    ) -> None:
        phase = config.phase
        logger = get_build_logger(config.package_name, phase.name)
        work_dir = config.target_dir
        root_applied = False

        for command in phase.commands:
            directory = parse_change_directory(command)
            if directory is not None:
                work_dir = os.path.normpath(os.path.join(work_dir, directory))
                logger.debug(f"Working directory is now {work_dir}")
                continue

            if config.exec_prefix:
                command = f"{config.exec_prefix} {command}"

            if phase.root and not root_applied:
                logger.info(f"Build root is {phase.root}")
                work_dir = os.path.normpath(os.path.join(work_dir, phase.root))
                root_applied = True

            logger.info(f"Running {command}", extra={"command": command})
            start_time = local_now()
            try:
                await executor.execute(command, work_dir, environment)
            finally:
                if self._output is not None:
                    self._output.flush()
                timer = CommandTimer(command=command, start_time=start_time, end_time=local_now())
                timers.append(timer)

            logger.info(f"Completed '{command}' in {timer.elapsed}")

    def _fail(self, result: DispatchResult, error: Exception) -> None:
        result.error = error
        self._set_state(result, DispatchState.FAILED)

    def _set_state(self, result: DispatchResult, state: DispatchState) -> None:
        self._state = state
        result.state = state
