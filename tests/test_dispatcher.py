import os
from pathlib import Path

import pytest

from ybuild.builder.container import ContainerHandle
from ybuild.builder.dispatcher import BuildDispatcher, parse_change_directory
from ybuild.builder.output import OutputDuplicator
from ybuild.buildpacks.provisioner import ToolProvisioner
from ybuild.common.config.constants import DispatchState, ExecutionStrategy
from ybuild.common.config.settings import Settings
from ybuild.common.dto.build import BuildConfiguration, BuildFlags, BuildPhase, ContainerDefinition
from ybuild.common.exceptions.build_exceptions import ContainerLifecycleError, ExecutionError
from ybuild.common.exceptions.provision_exceptions import CacheWriteError, ProvisionError
from tests.fakes import ConsoleBuffer, FakeContainerRuntime, FakeInstallTarget, RecordingExecutor


pytestmark = pytest.mark.asyncio


def _config(package_dir: Path, flags: BuildFlags = None, exec_prefix: str = "", **phase_fields) -> BuildConfiguration:
    return BuildConfiguration.resolve(
        BuildPhase(**phase_fields),
        package_name="pkg",
        target_dir=str(package_dir),
        flags=flags,
        exec_prefix=exec_prefix,
    )


def _dispatcher(settings, executor=None, runtime=None, output=None) -> BuildDispatcher:
    return BuildDispatcher(
        settings,
        provisioner=ToolProvisioner(settings),
        output=output,
        container_runtime=runtime,
        executor_factory=(lambda strategy: executor) if executor is not None else None,
    )


async def test_one_timer_per_real_command(settings, package_dir):
    executor = RecordingExecutor()
    config = _config(package_dir, commands=["make deps", "cd src", "make", "make test"])

    result = await _dispatcher(settings, executor).dispatch(config)

    assert result.succeeded
    assert result.state == DispatchState.SUCCEEDED
    assert [t.command for t in result.timers] == ["make deps", "make", "make test"]
    assert all(t.start_time <= t.end_time for t in result.timers)
    for earlier, later in zip(result.timers, result.timers[1:]):
        assert earlier.end_time <= later.start_time
    assert executor.closed


async def test_failure_stops_remaining_commands(settings, package_dir):
    executor = RecordingExecutor(fail_on=2)
    config = _config(package_dir, commands=["one", "two", "three", "four"])

    result = await _dispatcher(settings, executor).dispatch(config)

    assert not result.succeeded
    assert result.state == DispatchState.FAILED
    assert isinstance(result.error, ExecutionError)
    assert len(result.timers) == 2
    assert executor.commands == ["one", "two"]


async def test_change_directory_moves_later_commands(settings, package_dir):
    executor = RecordingExecutor()
    config = _config(package_dir, commands=["cd src/app", "ls", "cd ..", "ls"])

    await _dispatcher(settings, executor).dispatch(config)

    work_dirs = [call[1] for call in executor.calls]
    assert work_dirs == [str(package_dir / "src" / "app"), str(package_dir / "src")]


async def test_root_override_applied_once(settings, package_dir):
    executor = RecordingExecutor()
    config = _config(package_dir, commands=["a", "b"], root="build")

    await _dispatcher(settings, executor).dispatch(config)

    assert [call[1] for call in executor.calls] == [str(package_dir / "build")] * 2


async def test_exec_prefix_prepended(settings, package_dir):
    executor = RecordingExecutor()
    config = _config(package_dir, exec_prefix="nice -n 10", commands=["make"])

    result = await _dispatcher(settings, executor).dispatch(config)

    assert executor.commands == ["nice -n 10 make"]
    assert result.timers[0].command == "nice -n 10 make"


async def test_empty_phase_is_a_successful_noop(settings, package_dir):
    executor = RecordingExecutor()

    result = await _dispatcher(settings, executor).dispatch(_config(package_dir))

    assert result.succeeded
    assert result.timers == []
    assert executor.calls == []


async def test_package_dir_placeholder_substituted(settings):
    executor = RecordingExecutor()
    config = BuildConfiguration.resolve(
        BuildPhase(commands=["env"], environment=["FOO={PKGDIR}/bin", "PLAIN=value=1"]),
        package_name="pkg",
        target_dir="/work/pkg",
    )

    await _dispatcher(settings, executor).dispatch(config)

    overrides = executor.calls[0][2]
    assert overrides["FOO"] == "/work/pkg/bin"
    assert overrides["PLAIN"] == "value=1"
    assert "FOO" not in os.environ


async def test_dependencies_only_runs_nothing(settings, package_dir):
    executor = RecordingExecutor()
    config = _config(package_dir, flags=BuildFlags(dependencies_only=True), commands=["make"])

    result = await _dispatcher(settings, executor).dispatch(config)

    assert result.succeeded
    assert executor.calls == []


async def test_unknown_tool_fails_before_commands(settings, package_dir):
    executor = RecordingExecutor()
    config = _config(package_dir, commands=["make"], tools=["nosuchtool:1.0"])

    result = await _dispatcher(settings, executor).dispatch(config)

    assert isinstance(result.error, ProvisionError)
    assert result.timers == []
    assert executor.calls == []


async def test_clean_build_wipes_package_cache(settings, package_dir):
    stale = settings.package_cache_dir("pkg") / "stale.txt"
    stale.parent.mkdir(parents=True)
    stale.write_text("old")
    config = _config(package_dir, flags=BuildFlags(clean_build=True), commands=["make"])

    await _dispatcher(settings, RecordingExecutor()).dispatch(config)

    assert not stale.exists()


@pytest.mark.parametrize(
    "phase_fields, flags, sandbox, expected",
    [
        ({}, BuildFlags(), False, ExecutionStrategy.HOST),
        ({"sandbox": True}, BuildFlags(), False, ExecutionStrategy.SANDBOX),
        ({}, BuildFlags(), True, ExecutionStrategy.SANDBOX),
        ({"container": {"image": "alpine"}}, BuildFlags(), False, ExecutionStrategy.CONTAINER),
        ({"container": {"image": "alpine"}, "sandbox": True}, BuildFlags(host_only=True), False, ExecutionStrategy.SANDBOX),
        ({"container": {"image": "alpine"}}, BuildFlags(host_only=True), False, ExecutionStrategy.HOST),
    ],
)
async def test_strategy_selection(phase_fields, flags, sandbox, expected):
    config = BuildConfiguration.resolve(
        BuildPhase(commands=["true"], **phase_fields),
        package_name="pkg",
        target_dir="/work/pkg",
        flags=flags,
        global_sandbox=sandbox,
    )
    assert config.strategy == expected


async def test_container_lifecycle_replaces_existing(settings, package_dir):
    runtime = FakeContainerRuntime(existing=ContainerHandle(id="old", image="alpine"))
    config = _config(
        package_dir,
        commands=["cd sub", "make", "make test"],
        container=ContainerDefinition(image="alpine"),
        environment=["GOPATH={PKGDIR}/go"],
    )

    result = await _dispatcher(settings, runtime=runtime).dispatch(config)

    assert result.succeeded
    assert result.strategy == ExecutionStrategy.CONTAINER
    assert runtime.operations[:4] == ["find", "remove", "create", "start"]
    assert runtime.removed[0] == "old"
    assert [e[0] for e in runtime.execs] == ["make", "make test"]
    assert runtime.execs[0][1] == "/workspace/sub"
    assert runtime.execs[0][2]["GOPATH"] == f"{package_dir}/go"
    assert len(result.timers) == 2
    # the build container is cleaned up afterwards
    assert runtime.removed[-1] == "c0ffee"


@pytest.mark.parametrize("operation", ["find", "create", "start"])
async def test_container_lifecycle_failure_yields_no_timers(settings, package_dir, operation):
    runtime = FakeContainerRuntime(fail_on=operation)
    config = _config(package_dir, commands=["make"], container=ContainerDefinition(image="alpine"))

    result = await _dispatcher(settings, runtime=runtime).dispatch(config)

    assert isinstance(result.error, ContainerLifecycleError)
    assert result.error.operation == operation
    assert result.timers == []
    assert runtime.execs == []


async def test_container_nonzero_exit_keeps_timers(settings, package_dir):
    runtime = FakeContainerRuntime(exit_codes=[0, 2])
    config = _config(package_dir, commands=["a", "b", "c"], container=ContainerDefinition(image="alpine"))

    result = await _dispatcher(settings, runtime=runtime).dispatch(config)

    assert isinstance(result.error, ExecutionError)
    assert result.error.exit_code == 2
    assert len(result.timers) == 2
    assert [e[0] for e in runtime.execs] == ["a", "b"]


async def test_host_output_reaches_every_sink(settings, package_dir):
    console = ConsoleBuffer()
    output = OutputDuplicator.for_build(capture=True, poll_interval=0.01, console=console)
    config = _config(package_dir, commands=["echo first", "echo second >&2", "false", "echo never"])

    async with output:
        result = await _dispatcher(settings, output=output).dispatch(config)

    assert isinstance(result.error, ExecutionError)
    assert len(result.timers) == 3
    assert console.getvalue() == b"first\nsecond\n"
    assert output.buffer.getvalue() == b"first\nsecond\n"


async def test_sandbox_strategy_wraps_command(settings, package_dir):
    output = OutputDuplicator.for_build(capture=True, poll_interval=0.01, console=ConsoleBuffer())
    config = _config(package_dir, sandbox=True, commands=["pwd"])

    async with output:
        result = await _dispatcher(settings, output=output).dispatch(config)

    assert result.succeeded
    assert result.strategy == ExecutionStrategy.SANDBOX
    assert output.buffer.text().strip() == str(package_dir)


async def test_parse_change_directory():
    assert parse_change_directory("cd src") == "src"
    assert parse_change_directory("  cd ../other ") == "../other"
    assert parse_change_directory("cdrecord") is None
    assert parse_change_directory("make") is None


async def test_declared_tools_reach_commands(settings, package_dir, gradle_archive):
    executor = RecordingExecutor()
    dispatcher = BuildDispatcher(
        settings,
        provisioner=ToolProvisioner(settings, install_target=FakeInstallTarget(gradle_archive)),
        executor_factory=lambda strategy: executor,
    )
    config = _config(package_dir, commands=["gradle build"], tools=["gradle:6.0"])

    result = await dispatcher.dispatch(config)

    assert result.succeeded
    overrides = executor.calls[0][2]
    assert overrides["PATH"].startswith(str(settings.tools_dir / "gradle" / "gradle-6.0" / "bin"))
    assert overrides["GRADLE_USER_HOME"] == str(settings.package_cache_dir("pkg") / "gradle-home" / "6.0")


async def test_unwritable_cache_is_a_provision_failure(tmp_path, package_dir):
    cache_root = tmp_path / "cache"
    cache_root.write_text("not a directory")
    settings = Settings(_env_file=None, environment="development", cache_root=cache_root)
    executor = RecordingExecutor()

    result = await _dispatcher(settings, executor).dispatch(_config(package_dir, commands=["make"]))

    assert isinstance(result.error, CacheWriteError)
    assert result.state == DispatchState.FAILED
    assert result.timers == []
    assert executor.calls == []


class BrokenExecutor(RecordingExecutor):
    async def execute(self, command, work_dir, environment) -> None:
        await super().execute(command, work_dir, environment)
        raise RuntimeError("executor bug")


async def test_unexpected_error_is_returned_with_timers(settings, package_dir):
    executor = BrokenExecutor()

    result = await _dispatcher(settings, executor).dispatch(_config(package_dir, commands=["make", "make test"]))

    assert isinstance(result.error, RuntimeError)
    assert result.state == DispatchState.FAILED
    assert [t.command for t in result.timers] == ["make"]
    assert executor.closed


async def test_container_build_rejects_unknown_tools(settings, package_dir):
    runtime = FakeContainerRuntime()
    config = _config(
        package_dir,
        commands=["make"],
        tools=["nosuchtool:1.0"],
        container=ContainerDefinition(image="alpine"),
    )

    result = await _dispatcher(settings, runtime=runtime).dispatch(config)

    assert isinstance(result.error, ProvisionError)
    assert runtime.operations == []


async def test_container_dependencies_only_installs_nothing_on_host(settings, package_dir):
    runtime = FakeContainerRuntime()
    config = _config(
        package_dir,
        flags=BuildFlags(dependencies_only=True),
        commands=["make"],
        tools=["gradle:6.0"],
        container=ContainerDefinition(image="alpine"),
    )

    result = await _dispatcher(settings, runtime=runtime).dispatch(config)

    assert result.succeeded
    assert runtime.operations == []
    assert not settings.tools_dir.exists()
