from pathlib import Path

from ybuild.builder.environment import BuildEnvironment
from ybuild.buildpacks.base import BuildTool, render_url
from ybuild.buildpacks.registry import register_tool
from ybuild.common.config.constants import INSTALL_COMPLETE_MARKER
from ybuild.common.exceptions.build_exceptions import ExecutionError
from ybuild.common.exceptions.provision_exceptions import CacheWriteError
from ybuild.common.utils.file_utils import atomic_write_bytes, ensure_directory


RLANG_DIST_MIRROR = "https://cloud.r-project.org/src/base/R-{major}/R-{version}.tar.gz"


@register_tool("r")
class RLangBuildTool(BuildTool):
    """R ships as source only; it is compiled once into the shared cache.

    The prefix directory fills up over several minutes of ``make install``,
    so the tool only counts as installed once the completion marker exists.
    Builds sharing the cache wait on the version lock file meanwhile.
    """

    @property
    def tools_root(self) -> Path:
        return self.spec.shared_cache_dir / "R"

    @property
    def install_dir(self) -> Path:
        return self.tools_root / f"R-{self.version}"

    @property
    def source_dir(self) -> Path:
        return self.tools_root / "src" / f"R-{self.version}"

    @property
    def marker_path(self) -> Path:
        return self.install_dir / INSTALL_COMPLETE_MARKER

    def is_installed(self) -> bool:
        return self.spec.install_target.path_exists(self.marker_path)

    def download_url(self) -> str:
        return render_url(
            RLANG_DIST_MIRROR,
            self.name,
            self.version,
            major=self.major_version,
            version=self.version,
        )

    async def install_locked(self) -> None:
        target = self.spec.install_target
        archive = await target.download_file(self.download_url())

        if not target.path_exists(self.source_dir):
            await self.unpack(archive, self.source_dir)

        try:
            ensure_directory(self.install_dir)
        except OSError as e:
            raise CacheWriteError(
                f"Unable to create {self.install_dir}: {e}",
                path=str(self.install_dir),
                tool=self.name,
                version=self.version,
                cause=e,
            )

        steps = [
            f"./configure --with-x=no --prefix={self.install_dir}",
            "make",
            "make install",
        ]
        for step in steps:
            self.logger.info(f"Running {step}")
            try:
                await target.run(step, self.source_dir)
            except ExecutionError as e:
                raise self._provision_error(f"R build step failed: {step}", cause=e)

        try:
            atomic_write_bytes(self.marker_path, self.version.encode("utf-8"))
        except OSError as e:
            raise CacheWriteError(
                f"Unable to mark R v{self.version} installed: {e}",
                path=str(self.marker_path),
                tool=self.name,
                version=self.version,
                cause=e,
            )

    def setup(self, environment: BuildEnvironment) -> None:
        environment.prepend_path(str(self.install_dir / "bin"))
        environment.set("R_HOME", str(self.install_dir / "lib" / "R"))
        environment.set("R_LIBS_USER", str(self.spec.package_cache_dir / "R-libs" / self.version))
