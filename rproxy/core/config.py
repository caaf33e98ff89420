"""Configuration for the reverse proxy.

Provides strongly-typed settings using Pydantic. Values are resolved once at
startup from a TOML file, overlaid by ``APP_`` environment variables, with
defaults suitable for local development.
"""

from __future__ import annotations

import os
import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from rproxy.core.errors import from_config_error

DEFAULT_CONFIG_PATH = "config.toml"


class ServerSettings(BaseModel):
    """Address the proxy itself listens on."""
    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)


class TargetSettings(BaseModel):
    """The single upstream every request is forwarded to."""
    model_config = ConfigDict(frozen=True)

    # protocol/host are checked per request, not here
    protocol: str = "http"
    host: str = "localhost"
    port: int = Field(default=80, ge=0, le=65535)

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


class ProxySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    path_prefix: str = "/"


class RequestSettings(BaseModel):
    """Outbound client policy, applied uniformly to every request."""
    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=30.0, gt=0)
    accept_invalid_certs: bool = False


class LogSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "info"


class Settings(BaseSettings):
    """Pydantic settings for the proxy service."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    server: ServerSettings = ServerSettings()
    target: TargetSettings = TargetSettings()
    proxy: ProxySettings = ProxySettings()
    request: RequestSettings = RequestSettings()
    log: LogSettings = LogSettings()
    config_path: str = DEFAULT_CONFIG_PATH

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the file; a missing file is not an error.
        toml_file = os.getenv("APP_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
        )


def load_settings(**overrides) -> Settings:
    """Load settings from the config file and environment.

    Keyword overrides take precedence over both. Any malformed input is
    raised as ``ConfigError``.
    """
    try:
        return Settings(**overrides)
    except (ValidationError, tomllib.TOMLDecodeError, OSError) as e:
        raise from_config_error(e) from e
