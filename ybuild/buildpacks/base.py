from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, ClassVar, Union
import platform

from filelock import AsyncFileLock

from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.executors import HostExecutor
from ybuild.builder.output import OutputDuplicator
from ybuild.buildpacks.archive import unarchive, archive_root
from ybuild.buildpacks.download import DownloadCache
from ybuild.common.config.logging_config import get_tool_logger
from ybuild.common.exceptions.base_exceptions import YBuildBaseException
from ybuild.common.exceptions.provision_exceptions import (
    ProvisionError,
    CacheWriteError,
    UnresolvableVersionError,
)
from ybuild.common.utils.file_utils import (
    create_temp_sibling,
    ensure_directory,
    publish_directory,
    remove_tree,
)


_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}


def os_name() -> str:
    return platform.system().lower()


def arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def render_url(template: str, tool_name: str, tool_version: str, /, **values: str) -> str:
    try:
        return template.format(**values)
    except (KeyError, IndexError) as e:
        raise UnresolvableVersionError(
            f"Unable to render download URL: missing {e}",
            tool=tool_name,
            version=tool_version,
            cause=e,
        )


class InstallTarget(ABC):
    """Where tools get installed and how installation steps are carried out."""

    @abstractmethod
    def path_exists(self, path: Union[str, Path]) -> bool:
        raise NotImplementedError("Subclasses must implement path_exists method")

    @abstractmethod
    async def download_file(self, url: str) -> Path:
        raise NotImplementedError("Subclasses must implement download_file method")

    @abstractmethod
    async def unarchive(self, archive_path: Path, destination: Path) -> Path:
        raise NotImplementedError("Subclasses must implement unarchive method")

    @abstractmethod
    async def run(self, command: str, work_dir: Union[str, Path]) -> None:
        raise NotImplementedError("Subclasses must implement run method")


class HostInstallTarget(InstallTarget):
    def __init__(
        self,
        downloader: DownloadCache,
        output: Optional[OutputDuplicator] = None,
        environment: Optional[BuildEnvironment] = None,
    ):
        self._downloader = downloader
        self._output = output
        self._environment = environment

    def path_exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    async def download_file(self, url: str) -> Path:
        return await self._downloader.fetch(url)

    async def unarchive(self, archive_path: Path, destination: Path) -> Path:
        return await unarchive(archive_path, destination)

    async def run(self, command: str, work_dir: Union[str, Path]) -> None:
        executor = HostExecutor(output=self._output)
        environment = self._environment.copy() if self._environment else BuildEnvironment()
        await executor.execute(command, str(work_dir), environment)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    version: str
    shared_cache_dir: Path
    package_cache_dir: Path
    install_target: InstallTarget


class BuildTool(ABC):
    """A versioned toolchain that can be installed into the shared cache.

    ``install`` is idempotent and publishes its result atomically, so a
    partially installed tool is never observed by a later build. Builds
    sharing the cache take turns on a per-version lock file. ``setup`` only
    touches the environment it is given.
    """

    name: ClassVar[str]

    def __init__(self, spec: ToolSpec):
        if not spec.version:
            raise UnresolvableVersionError(
                f"No version given for {self.name}",
                tool=self.name,
            )
        self.spec = spec
        self.logger = get_tool_logger(self.name, spec.version)

    @property
    def version(self) -> str:
        return self.spec.version

    @property
    def major_version(self) -> str:
        return self.version.lstrip("v").split(".")[0]

    @property
    def tools_root(self) -> Path:
        return self.spec.shared_cache_dir / self.name

    @property
    @abstractmethod
    def install_dir(self) -> Path:
        raise NotImplementedError("Subclasses must implement install_dir property")

    @abstractmethod
    def download_url(self) -> str:
        raise NotImplementedError("Subclasses must implement download_url method")

    @abstractmethod
    def setup(self, environment: BuildEnvironment) -> None:
        raise NotImplementedError("Subclasses must implement setup method")

    def is_installed(self) -> bool:
        return self.spec.install_target.path_exists(self.install_dir)

    @property
    def lock_path(self) -> Path:
        return self.spec.shared_cache_dir / ".locks" / f"{self.name}-{self.version}.lock"

    @asynccontextmanager
    async def install_lock(self) -> AsyncIterator[None]:
        """Hold the per-version lock file shared by every build using this cache."""
        lock = AsyncFileLock(str(self.lock_path))
        try:
            ensure_directory(self.lock_path.parent)
            await lock.acquire()
        except OSError as e:
            raise CacheWriteError(
                f"Unable to lock {self.lock_path}: {e}",
                path=str(self.lock_path),
                tool=self.name,
                version=self.version,
                cause=e,
            )
        try:
            yield
        finally:
            await lock.release()

    async def install(self) -> Path:
        if self.is_installed():
            self.logger.info(f"{self.name} {self.version} located in {self.install_dir}")
            return self.install_dir

        async with self.install_lock():
            if self.is_installed():
                self.logger.info(f"{self.name} {self.version} was installed by another build")
                return self.install_dir

            self.logger.info(f"Will install {self.name} {self.version} into {self.install_dir}")
            await self.install_locked()
            self.logger.info(f"{self.name} {self.version} installed")
        return self.install_dir

    async def install_locked(self) -> None:
        archive = await self.spec.install_target.download_file(self.download_url())
        await self.unpack(archive, self.install_dir)

    async def unpack(self, archive: Path, final_dir: Path) -> None:
        try:
            staging = create_temp_sibling(final_dir)
        except OSError as e:
            raise CacheWriteError(
                f"Unable to stage {self.name} installation: {e}",
                path=str(final_dir.parent),
                tool=self.name,
                version=self.version,
                cause=e,
            )

        try:
            await self.spec.install_target.unarchive(archive, staging)
            if not publish_directory(archive_root(staging), final_dir):
                self.logger.info(f"{final_dir} was installed by another build")
        except YBuildBaseException:
            raise
        except OSError as e:
            raise CacheWriteError(
                f"Unable to publish {final_dir}: {e}",
                path=str(final_dir),
                tool=self.name,
                version=self.version,
                cause=e,
            )
        finally:
            remove_tree(staging)

    def _provision_error(self, message: str, cause: Optional[Exception] = None) -> ProvisionError:
        return ProvisionError(message, tool=self.name, version=self.version, cause=cause)
