import asyncio
import os
import time

import pytest

from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.executors import HostExecutor, SandboxExecutor
from ybuild.builder.output import OutputDuplicator
from ybuild.common.exceptions.base_exceptions import ErrorCode
from ybuild.common.exceptions.build_exceptions import CommandTimeoutError, ExecutionError
from tests.fakes import ConsoleBuffer


pytestmark = pytest.mark.asyncio


def _environment(**overrides) -> BuildEnvironment:
    environment = BuildEnvironment({"PATH": os.environ.get("PATH", "/usr/bin:/bin")})
    for key, value in overrides.items():
        environment.set(key, value)
    return environment


async def test_host_command_sees_work_dir_and_overlay(tmp_path):
    output = OutputDuplicator.for_build(capture=True, console=ConsoleBuffer(), poll_interval=0.01)

    async with output:
        executor = HostExecutor(output=output)
        await executor.execute('pwd; echo "$GREETING"', str(tmp_path), _environment(GREETING="hello"))

    assert output.buffer.text() == f"{tmp_path}\nhello\n"
    assert "GREETING" not in os.environ


async def test_nonzero_exit_raises_execution_error(tmp_path):
    executor = HostExecutor(output=None)

    with pytest.raises(ExecutionError) as exc_info:
        await executor.execute("exit 3", str(tmp_path), _environment())

    assert exc_info.value.exit_code == 3
    assert exc_info.value.command == "exit 3"


async def test_missing_work_dir_is_a_spawn_error(tmp_path):
    executor = HostExecutor(output=None)

    with pytest.raises(ExecutionError) as exc_info:
        await executor.execute("true", str(tmp_path / "missing"), _environment())

    assert exc_info.value.error_code == ErrorCode.EXECUTION_SPAWN_ERROR


async def test_timeout_kills_command(tmp_path):
    executor = HostExecutor(output=None, timeout_seconds=0.2)
    started = time.monotonic()

    with pytest.raises(CommandTimeoutError):
        await executor.execute("sleep 10", str(tmp_path), _environment())

    assert time.monotonic() - started < 5


async def test_cancellation_kills_command(tmp_path):
    marker = tmp_path / "finished"
    executor = HostExecutor(output=None)
    task = asyncio.create_task(
        executor.execute(f"sleep 1 && touch {marker}", str(tmp_path), _environment())
    )
    await asyncio.sleep(0.2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(1.2)
    assert not marker.exists()


async def test_sandbox_wraps_argv():
    executor = SandboxExecutor(["bwrap", "--unshare-net", "--"])
    assert executor.build_argv("make") == ["bwrap", "--unshare-net", "--", "/bin/sh", "-c", "make"]


async def test_sandbox_requires_isolation_command():
    with pytest.raises(ValueError):
        SandboxExecutor([])


async def test_sandbox_runs_through_wrapper(tmp_path):
    output = OutputDuplicator.for_build(capture=True, console=ConsoleBuffer(), poll_interval=0.01)

    async with output:
        executor = SandboxExecutor(["env", "SANDBOXED=1"], output=output)
        await executor.execute('echo "$SANDBOXED"', str(tmp_path), _environment())

    assert output.buffer.text() == "1\n"
