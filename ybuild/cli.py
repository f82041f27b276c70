import argparse
import asyncio
import json
import logging
import os
import platform
import signal
import sys
from pathlib import Path
from typing import Optional, Dict, List, Sequence, Tuple, Any

from pydantic import ValidationError

from ybuild import __version__
from ybuild.builder.dispatcher import BuildDispatcher, DispatchResult
from ybuild.builder.output import OutputDuplicator
from ybuild.builder.report import render_summary
from ybuild.buildpacks import available_tools, os_name, arch
from ybuild.common.config.constants import DEFAULT_BUILD_TARGET, TIME_FORMAT
from ybuild.common.config.logging_config import setup_logging, get_logger
from ybuild.common.config.settings import Settings, get_settings
from ybuild.common.dto.build import BuildPhase, BuildFlags, BuildConfiguration, TargetTimer
from ybuild.common.exceptions.base_exceptions import ConfigurationError
from ybuild.common.utils.time_utils import local_now, format_clock
from ybuild.publisher.build_log_publisher import BuildLogPublisher


logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def parse_target(value: Optional[str], default_package: str) -> Tuple[str, str]:
    """Split ``@package:target`` or a bare ``target`` into its parts."""
    if not value:
        return default_package, DEFAULT_BUILD_TARGET
    if not value.startswith("@"):
        return default_package, value

    package, _, target = value[1:].partition(":")
    if not package:
        raise ConfigurationError(f"Invalid build target {value!r}", field_name="target", field_value=value)
    return package, target or DEFAULT_BUILD_TARGET


def load_phases(phase_file: Path) -> Dict[str, BuildPhase]:
    try:
        document = json.loads(phase_file.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Unable to read {phase_file}: {e}", field_name="phase_file", cause=e)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{phase_file} is not valid JSON: {e}", field_name="phase_file", cause=e)

    if not isinstance(document, dict):
        raise ConfigurationError(f"{phase_file} must contain a JSON object", field_name="phase_file")

    try:
        if not document or set(document) & set(BuildPhase.model_fields):
            phase = BuildPhase.model_validate(document)
            return {phase.name: phase}
        return {
            name: BuildPhase.model_validate({"name": name, **definition})
            for name, definition in document.items()
        }
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid build phase in {phase_file}: {e}", field_name="phase_file", cause=e)


def select_phase(phases: Dict[str, BuildPhase], target: str) -> BuildPhase:
    if len(phases) == 1 and target == DEFAULT_BUILD_TARGET:
        return next(iter(phases.values()))
    if target not in phases:
        raise ConfigurationError(
            f"Build target {target} specified but it doesn't exist! "
            f"Valid build targets: {', '.join(sorted(phases))}",
            field_name="target",
            field_value=target,
        )
    return phases[target]


class BuildCommand:
    def __init__(self, args: argparse.Namespace, settings: Optional[Settings] = None):
        self._args = args
        self._settings = settings or get_settings()

    @property
    def upload_enabled(self) -> bool:
        if self._args.upload is not None:
            return self._args.upload
        return self._settings.upload_build_logs

    def resolve(self) -> BuildConfiguration:
        package_dir = Path(self._args.package_dir).resolve()
        package, target = parse_target(self._args.target, package_dir.name)
        phase = select_phase(load_phases(Path(self._args.phase_file)), target)

        flags = BuildFlags(
            host_only=self._args.no_container,
            clean_build=self._args.clean,
            dependencies_only=self._args.deps_only,
        )
        return BuildConfiguration.resolve(
            phase,
            package_name=package,
            target_dir=str(package_dir),
            flags=flags,
            exec_prefix=self._args.exec_prefix or "",
            global_sandbox=self._settings.sandbox_enabled,
        )

    async def run(self) -> int:
        config = self.resolve()
        output = OutputDuplicator.for_build(
            capture=self.upload_enabled,
            poll_interval=self._settings.output_poll_interval_seconds,
        )

        async with output:
            capture = output.capture_handler()
            root_logger = logging.getLogger("ybuild")
            root_logger.addHandler(capture)
            try:
                result = await self._build(config, output)
            finally:
                root_logger.removeHandler(capture)

        if self.upload_enabled and output.buffer is not None:
            await BuildLogPublisher(self._settings).upload(output.buffer.text())

        return EXIT_SUCCESS if result.succeeded else EXIT_FAILURE

    async def _build(self, config: BuildConfiguration, output: OutputDuplicator) -> DispatchResult:
        started_at = local_now()
        output.write(f"Build started at {format_clock(started_at, TIME_FORMAT)}\n")
        output.write(f"Building target package {config.package_name} in {config.target_dir}...\n")

        dispatcher = BuildDispatcher(self._settings, output=output)
        try:
            result = await dispatcher.dispatch(config)
        except asyncio.CancelledError:
            output.write("Build cancelled\n")
            raise

        finished_at = local_now()
        output.write(render_summary(
            [TargetTimer(name=config.phase.name, timers=result.timers)],
            started_at,
            finished_at,
            result.error,
        ))
        return result


def _install_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except NotImplementedError:
            logger.debug(f"Signal handler for {sig} unavailable on this platform")


async def run_build(args: argparse.Namespace) -> int:
    _install_signal_handlers()
    try:
        return await BuildCommand(args).run()
    except asyncio.CancelledError:
        logger.warning("Build interrupted")
        return EXIT_FAILURE


def platform_info() -> Dict[str, Any]:
    uname = platform.uname()
    return {
        "os": os_name(),
        "arch": arch(),
        "kernel": uname.release,
        "hostname": uname.node,
        "python": platform.python_version(),
        "cpus": os.cpu_count(),
        "tools": available_tools(),
        "ybuild": __version__,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ybuild", description="Build packages with provisioned toolchains")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    build = subparsers.add_parser("build", help="Build a target of a package")
    build.add_argument("target", nargs="?", help="target or @package:target")
    build.add_argument("--phase-file", required=True, help="JSON build phase, or a mapping of targets to phases")
    build.add_argument("--package-dir", default=".", help="package directory commands run in")
    build.add_argument("--no-container", action="store_true", help="run on the host even if a container is declared")
    build.add_argument("--deps-only", action="store_true", help="install tools and stop")
    build.add_argument("--clean", action="store_true", help="wipe the package cache first")
    build.add_argument("--exec-prefix", default="", help="prefix prepended to every command")
    build.add_argument("--upload", dest="upload", action="store_true", default=None, help="upload the build log")
    build.add_argument("--no-upload", dest="upload", action="store_false", help="never upload the build log")

    subparsers.add_parser("platform", help="Show platform info")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(
        log_level="DEBUG" if settings.debug else settings.log_level,
        json_format=settings.log_json,
        log_dir=settings.log_dir,
    )

    if args.command == "platform":
        for key, value in platform_info().items():
            if isinstance(value, list):
                value = ", ".join(value)
            print(f"{key:>10}: {value}")
        return EXIT_SUCCESS

    if args.command != "build":
        parser.print_help()
        return EXIT_FAILURE

    try:
        return asyncio.run(run_build(args))
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
