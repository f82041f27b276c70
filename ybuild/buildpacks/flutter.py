from pathlib import Path
from typing import Tuple

from packaging.version import Version, InvalidVersion

from ybuild.builder.environment import BuildEnvironment
from ybuild.buildpacks.base import BuildTool, render_url, os_name
from ybuild.buildpacks.registry import register_tool
from ybuild.common.config.logging_config import get_logger


logger = get_logger(__name__)

FLUTTER_DIST_MIRROR = (
    "https://storage.googleapis.com/flutter_infra/releases/{channel}/{os}/"
    "flutter_{os}_{version}-{channel}.{extension}"
)
DEFAULT_CHANNEL = "stable"

# releases before this one are published with a "v" prefix
UNPREFIXED_SINCE = Version("1.17.0")


def download_url_version(version: str) -> str:
    prefixed = version if version.startswith("v") else f"v{version}"
    try:
        parsed = Version(prefixed)
    except InvalidVersion:
        # unparseable versions sort before every release
        logger.debug(f"Unable to parse flutter version {version!r}, keeping the v prefix")
        return prefixed

    if parsed < UNPREFIXED_SINCE:
        return prefixed
    return prefixed[1:]


def split_channel(version: str) -> Tuple[str, str]:
    """Split ``1.17.0_beta`` into its release and channel."""
    parts = version.split("_")
    if len(parts) == 2:
        return parts[0], parts[1]
    return parts[0], DEFAULT_CHANNEL


@register_tool("flutter")
class FlutterBuildTool(BuildTool):
    @property
    def install_dir(self) -> Path:
        return self.tools_root / f"flutter-{self.version}"

    def flutter_os(self) -> str:
        name = os_name()
        return "macos" if name == "darwin" else name

    def archive_extension(self) -> str:
        return "zip" if os_name() == "darwin" else "tar.xz"

    def download_url(self) -> str:
        release, channel = split_channel(self.version)
        return render_url(
            FLUTTER_DIST_MIRROR,
            self.name,
            self.version,
            channel=channel,
            os=self.flutter_os(),
            version=download_url_version(release),
            extension=self.archive_extension(),
        )

    def setup(self, environment: BuildEnvironment) -> None:
        environment.prepend_path(str(self.install_dir / "bin"))
        environment.set("FLUTTER_ROOT", str(self.install_dir))
        environment.set("PUB_CACHE", str(self.spec.package_cache_dir / "pub-cache" / self.version))
