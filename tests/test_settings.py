from pathlib import Path

import pytest
from pydantic import ValidationError

from ybuild.common.config.settings import Settings


def test_environment_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("YBUILD_CACHE_ROOT", str(tmp_path))
    monkeypatch.setenv("YBUILD_UPLOAD_BUILD_LOGS", "true")
    monkeypatch.setenv("YBUILD_API_TOKEN", "token-value")
    monkeypatch.setenv("YBUILD_SANDBOX_COMMAND", '["firejail", "--quiet"]')

    settings = Settings(_env_file=None)

    assert settings.cache_root == tmp_path
    assert settings.tools_dir == tmp_path / "tools"
    assert settings.downloads_dir == tmp_path / "downloads"
    assert settings.package_cache_dir("pkg") == tmp_path / "packages" / "pkg"
    assert settings.upload_build_logs is True
    assert settings.get_api_token() == "token-value"
    assert "token-value" not in repr(settings)
    assert settings.sandbox_command == ["firejail", "--quiet"]


def test_log_level_normalized():
    assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"


def test_invalid_log_level_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="chatty")


def test_empty_sandbox_command_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, sandbox_command=[])


def test_debug_forbidden_in_production():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, environment="production", debug=True)
