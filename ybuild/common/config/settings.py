from functools import lru_cache
from pathlib import Path
from typing import Optional, List
from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr, field_validator, model_validator


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="YBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(
        default=Environment.PRODUCTION,
        description="Application environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON log records")
    log_dir: Optional[str] = Field(default=None)

    cache_root: Path = Field(
        default_factory=lambda: Path.home() / ".cache" / "ybuild",
        description="Root of the shared tool and download cache"
    )

    api_url: str = Field(
        default="https://api.yourbase.io",
        description="Base URL of the management API"
    )
    management_url: str = Field(
        default="https://app.yourbase.io",
        description="Base URL used to build operator-facing links"
    )
    api_token: Optional[SecretStr] = Field(default=None)
    upload_build_logs: bool = Field(default=False)
    upload_timeout_seconds: float = Field(default=30.0, gt=0)

    sandbox_enabled: bool = Field(
        default=False,
        description="Run every phase sandboxed regardless of its own flag"
    )
    sandbox_command: List[str] = Field(
        default=[
            "bwrap",
            "--dev-bind", "/", "/",
            "--unshare-net",
            "--die-with-parent",
            "--",
        ]
    )

    command_timeout_seconds: float = Field(default=0.0, ge=0)
    output_poll_interval_seconds: float = Field(default=0.05, gt=0)

    download_timeout_seconds: float = Field(default=600.0, gt=0)
    download_max_retries: int = Field(default=3, ge=0, le=10)

    docker_base_url: Optional[str] = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("sandbox_command")
    @classmethod
    def validate_sandbox_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("sandbox_command must name at least the isolation binary")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        if self.environment == Environment.PRODUCTION and self.debug:
            raise ValueError("Debug mode must be disabled in production")
        return self

    @property
    def tools_dir(self) -> Path:
        return self.cache_root / "tools"

    @property
    def downloads_dir(self) -> Path:
        return self.cache_root / "downloads"

    def package_cache_dir(self, package_name: str) -> Path:
        return self.cache_root / "packages" / package_name

    def get_api_token(self) -> Optional[str]:
        if self.api_token is None:
            return None
        return self.api_token.get_secret_value()


@lru_cache()
def get_settings() -> Settings:
    return Settings()
