from pathlib import Path

import pytest

from ybuild.common.config.settings import Settings
from tests.fakes import make_zip


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        cache_root=tmp_path / "cache",
        sandbox_command=["env"],
    )


@pytest.fixture
def package_dir(tmp_path: Path) -> Path:
    path = tmp_path / "pkg"
    path.mkdir()
    return path


@pytest.fixture
def gradle_archive(tmp_path: Path) -> Path:
    return make_zip(
        tmp_path / "gradle-6.0-bin.zip",
        {
            "gradle-6.0/bin/gradle": "#!/bin/sh\necho gradle\n",
            "gradle-6.0/lib/gradle-core.jar": "jar",
        },
    )
