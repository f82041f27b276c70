from typing import Optional, Dict, List, Iterable, Tuple, Mapping
import os

from ybuild.common.config.constants import PATH_VARIABLE, PKGDIR_PLACEHOLDER
from ybuild.common.config.logging_config import get_logger


logger = get_logger(__name__)


class BuildEnvironment:
    """Environment handed to every command of one dispatch.

    Starts as a snapshot of the parent process environment and is only ever
    mutated through this object; ``os.environ`` is left untouched so that
    concurrent dispatches in one process cannot see each other's tools.
    """

    def __init__(self, base: Optional[Mapping[str, str]] = None):
        self._base: Dict[str, str] = dict(os.environ if base is None else base)
        self._overrides: Dict[str, str] = {}
        self._path_prefixes: List[str] = []

    def set(self, key: str, value: str) -> None:
        logger.debug(f"Setting {key} = {value}")
        if key == PATH_VARIABLE:
            # an explicit PATH replaces everything prepended so far
            self._path_prefixes.clear()
        self._overrides[key] = value

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.as_dict().get(key, default)

    def prepend_path(self, directory: str) -> None:
        if directory in self._path_prefixes:
            self._path_prefixes.remove(directory)
        self._path_prefixes.insert(0, directory)
        logger.debug(f"Prepending {directory} to {PATH_VARIABLE}")

    def apply_assignments(
        self,
        assignments: Iterable[Tuple[str, str]],
        package_dir: str,
    ) -> Dict[str, str]:
        applied: Dict[str, str] = {}
        for key, value in assignments:
            value = value.replace(PKGDIR_PLACEHOLDER, package_dir)
            logger.info(f"Setting {key} = {value}")
            self.set(key, value)
            applied[key] = value
        return applied

    @property
    def overrides(self) -> Dict[str, str]:
        result = dict(self._overrides)
        if self._path_prefixes:
            result[PATH_VARIABLE] = self._joined_path()
        return result

    def _joined_path(self) -> str:
        current = self._overrides.get(PATH_VARIABLE, self._base.get(PATH_VARIABLE, ""))
        parts = list(self._path_prefixes)
        if current:
            parts.append(current)
        return os.pathsep.join(parts)

    def as_dict(self) -> Dict[str, str]:
        env = dict(self._base)
        env.update(self.overrides)
        return env

    def copy(self) -> "BuildEnvironment":
        clone = BuildEnvironment(self._base)
        clone._overrides = dict(self._overrides)
        clone._path_prefixes = list(self._path_prefixes)
        return clone
