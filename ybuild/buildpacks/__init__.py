from ybuild.buildpacks.base import (
    BuildTool,
    ToolSpec,
    InstallTarget,
    HostInstallTarget,
    os_name,
    arch,
)
from ybuild.buildpacks.registry import (
    register_tool,
    create_tool,
    available_tools,
    parse_tool_string,
)
from ybuild.buildpacks.download import DownloadCache
from ybuild.buildpacks.gradle import GradleBuildTool
from ybuild.buildpacks.maven import MavenBuildTool
from ybuild.buildpacks.flutter import FlutterBuildTool
from ybuild.buildpacks.rlang import RLangBuildTool
from ybuild.buildpacks.provisioner import ToolProvisioner

__all__ = [
    "BuildTool",
    "ToolSpec",
    "InstallTarget",
    "HostInstallTarget",
    "os_name",
    "arch",
    "register_tool",
    "create_tool",
    "available_tools",
    "parse_tool_string",
    "DownloadCache",
    "GradleBuildTool",
    "MavenBuildTool",
    "FlutterBuildTool",
    "RLangBuildTool",
    "ToolProvisioner",
]
