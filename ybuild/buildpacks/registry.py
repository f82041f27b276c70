from typing import Dict, List, Tuple, Type, Callable

from ybuild.buildpacks.base import BuildTool, ToolSpec
from ybuild.common.exceptions.provision_exceptions import UnresolvableVersionError


_TOOLS: Dict[str, Type[BuildTool]] = {}


def register_tool(name: str) -> Callable[[Type[BuildTool]], Type[BuildTool]]:
    def decorator(cls: Type[BuildTool]) -> Type[BuildTool]:
        if name in _TOOLS and _TOOLS[name] is not cls:
            raise ValueError(f"Tool {name} is already registered")
        cls.name = name
        _TOOLS[name] = cls
        return cls
    return decorator


def available_tools() -> List[str]:
    return sorted(_TOOLS)


def parse_tool_string(tool_string: str) -> Tuple[str, str]:
    name, sep, version = tool_string.strip().partition(":")
    if not sep or not name or not version:
        raise UnresolvableVersionError(
            f"Tool must be given as name:version, got {tool_string!r}",
            tool=name or None,
        )
    return name, version


def create_tool(name: str, spec: ToolSpec) -> BuildTool:
    tool_class = _TOOLS.get(name)
    if tool_class is None:
        raise UnresolvableVersionError(
            f"Unknown tool {name}, available: {', '.join(available_tools())}",
            tool=name,
            version=spec.version,
        )
    return tool_class(spec)
