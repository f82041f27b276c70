from pathlib import Path

from ybuild.builder.environment import BuildEnvironment
from ybuild.buildpacks.base import BuildTool, render_url
from ybuild.buildpacks.registry import register_tool


GRADLE_DIST_MIRROR = "https://services.gradle.org/distributions/gradle-{version}-bin.zip"


@register_tool("gradle")
class GradleBuildTool(BuildTool):
    @property
    def install_dir(self) -> Path:
        return self.tools_root / f"gradle-{self.version}"

    @property
    def user_home(self) -> Path:
        return self.spec.package_cache_dir / "gradle-home" / self.version

    def download_url(self) -> str:
        return render_url(GRADLE_DIST_MIRROR, self.name, self.version, version=self.version)

    def setup(self, environment: BuildEnvironment) -> None:
        environment.prepend_path(str(self.install_dir / "bin"))
        environment.set("GRADLE_USER_HOME", str(self.user_home))
