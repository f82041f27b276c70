from abc import ABC, abstractmethod
from typing import Optional, List, Sequence
import asyncio
import os
import signal

from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.output import OutputDuplicator
from ybuild.common.config.constants import ExecutionStrategy
from ybuild.common.config.logging_config import get_logger
from ybuild.common.exceptions.base_exceptions import ErrorCode
from ybuild.common.exceptions.build_exceptions import ExecutionError, CommandTimeoutError


logger = get_logger(__name__)

DEFAULT_SHELL = "/bin/sh"


class CommandExecutor(ABC):
    strategy: ExecutionStrategy

    @abstractmethod
    async def execute(
        self,
        command: str,
        work_dir: str,
        environment: BuildEnvironment,
    ) -> None:
        raise NotImplementedError("Subclasses must implement execute method")

    async def close(self) -> None:
        pass


class SubprocessExecutor(CommandExecutor):
    def __init__(
        self,
        output: Optional[OutputDuplicator] = None,
        timeout_seconds: float = 0.0,
        shell: str = DEFAULT_SHELL,
    ):
        self._output = output
        self._timeout = timeout_seconds
        self._shell = shell

    @abstractmethod
    def build_argv(self, command: str) -> List[str]:
        raise NotImplementedError("Subclasses must implement build_argv method")

    async def execute(
        self,
        command: str,
        work_dir: str,
        environment: BuildEnvironment,
    ) -> None:
        argv = self.build_argv(command)
        stdout = self._output.write_fd if self._output is not None else None
        logger.debug(f"Spawning {argv} in {work_dir}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=work_dir,
                env=environment.as_dict(),
                stdout=stdout,
                stderr=asyncio.subprocess.STDOUT if stdout is not None else None,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError(
                message=f"Unable to start command: {e}",
                command=command,
                strategy=self.strategy.value,
                error_code=ErrorCode.EXECUTION_SPAWN_ERROR,
                details={"work_dir": work_dir},
                cause=e,
            )

        try:
            if self._timeout > 0:
                await asyncio.wait_for(process.wait(), timeout=self._timeout)
            else:
                await process.wait()
        except asyncio.TimeoutError:
            await self._terminate(process)
            raise CommandTimeoutError(
                command=command,
                timeout_seconds=self._timeout,
                strategy=self.strategy.value,
            )
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

        if process.returncode != 0:
            raise ExecutionError(
                message=f"Command failed with exit code {process.returncode}",
                command=command,
                exit_code=process.returncode,
                strategy=self.strategy.value,
                details={"work_dir": work_dir},
            )

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        logger.warning(f"Killing process group {process.pid}")
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        await process.wait()


class HostExecutor(SubprocessExecutor):
    strategy = ExecutionStrategy.HOST

    def build_argv(self, command: str) -> List[str]:
        return [self._shell, "-c", command]


class SandboxExecutor(SubprocessExecutor):
    strategy = ExecutionStrategy.SANDBOX

    def __init__(
        self,
        sandbox_command: Sequence[str],
        output: Optional[OutputDuplicator] = None,
        timeout_seconds: float = 0.0,
        shell: str = DEFAULT_SHELL,
    ):
        super().__init__(output=output, timeout_seconds=timeout_seconds, shell=shell)
        if not sandbox_command:
            raise ValueError("sandbox_command must not be empty")
        self._sandbox_command = list(sandbox_command)

    def build_argv(self, command: str) -> List[str]:
        return [*self._sandbox_command, self._shell, "-c", command]
