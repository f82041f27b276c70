from pathlib import Path
from typing import Optional, Dict, List
import asyncio

from ybuild.builder.environment import BuildEnvironment
from ybuild.builder.output import OutputDuplicator
from ybuild.buildpacks.base import BuildTool, HostInstallTarget, InstallTarget, ToolSpec
from ybuild.buildpacks.download import DownloadCache
from ybuild.buildpacks.registry import create_tool, parse_tool_string
from ybuild.common.config.logging_config import get_logger
from ybuild.common.config.settings import Settings, get_settings
from ybuild.common.dto.build import BuildConfiguration
from ybuild.common.exceptions.provision_exceptions import CacheWriteError, ProvisionError
from ybuild.common.utils.file_utils import ensure_directory, remove_tree


logger = get_logger(__name__)


class ToolProvisioner:
    """Installs the tools a phase declares and exposes them to its commands."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        downloader: Optional[DownloadCache] = None,
        install_target: Optional[InstallTarget] = None,
    ):
        self._settings = settings or get_settings()
        self._downloader = downloader or DownloadCache(
            self._settings.downloads_dir,
            timeout_seconds=self._settings.download_timeout_seconds,
            max_retries=self._settings.download_max_retries,
        )
        self._install_target = install_target
        self._install_locks: Dict[str, asyncio.Lock] = {}

    @property
    def settings(self) -> Settings:
        return self._settings

    def _lock_for(self, install_dir: Path) -> asyncio.Lock:
        key = str(install_dir)
        lock = self._install_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._install_locks[key] = lock
        return lock

    def package_cache_dir(self, config: BuildConfiguration) -> Path:
        return self._settings.package_cache_dir(config.package_name)

    def resolve(
        self,
        config: BuildConfiguration,
        install_target: Optional[InstallTarget] = None,
    ) -> List[BuildTool]:
        """Parse the phase's tool strings into providers without installing them."""
        target = install_target or self._install_target or HostInstallTarget(self._downloader)
        package_cache = self.package_cache_dir(config)

        tools: List[BuildTool] = []
        for tool_string in config.phase.tools:
            name, version = parse_tool_string(tool_string)
            spec = ToolSpec(
                name=name,
                version=version,
                shared_cache_dir=self._settings.tools_dir,
                package_cache_dir=package_cache,
                install_target=target,
            )
            tools.append(create_tool(name, spec))
        return tools

    async def provision(
        self,
        config: BuildConfiguration,
        environment: BuildEnvironment,
        output: Optional[OutputDuplicator] = None,
    ) -> List[BuildTool]:
        package_cache = self.package_cache_dir(config)
        try:
            if config.flags.clean_build and remove_tree(package_cache):
                logger.info(f"Removed package cache {package_cache}")
            ensure_directory(package_cache)
        except OSError as e:
            raise CacheWriteError(
                f"Unable to prepare package cache {package_cache}: {e}",
                path=str(package_cache),
                cause=e,
            )

        target = self._install_target or HostInstallTarget(
            self._downloader,
            output=output,
            environment=environment,
        )

        tools = self.resolve(config, target)
        for tool in tools:
            try:
                async with self._lock_for(tool.install_dir):
                    await tool.install()
            except ProvisionError as e:
                raise e.with_context(package=config.package_name, phase=config.phase.name)
            tool.setup(environment)

        if tools:
            logger.info(f"Provisioned {', '.join(f'{t.name}:{t.version}' for t in tools)}")
        return tools
