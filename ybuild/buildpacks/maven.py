from pathlib import Path

from ybuild.builder.environment import BuildEnvironment
from ybuild.buildpacks.base import BuildTool, render_url
from ybuild.buildpacks.registry import register_tool


MAVEN_DIST_MIRROR = (
    "https://archive.apache.org/dist/maven/maven-{major}/{version}/binaries/"
    "apache-maven-{version}-bin.tar.gz"
)


@register_tool("maven")
class MavenBuildTool(BuildTool):
    @property
    def install_dir(self) -> Path:
        return self.tools_root / f"apache-maven-{self.version}"

    @property
    def local_repository(self) -> Path:
        return self.spec.package_cache_dir / "m2" / self.version / "repository"

    def download_url(self) -> str:
        return render_url(
            MAVEN_DIST_MIRROR,
            self.name,
            self.version,
            major=self.major_version,
            version=self.version,
        )

    def setup(self, environment: BuildEnvironment) -> None:
        environment.prepend_path(str(self.install_dir / "bin"))
        environment.set("M2_HOME", str(self.install_dir))
        environment.set("MAVEN_OPTS", f"-Dmaven.repo.local={self.local_repository}")
