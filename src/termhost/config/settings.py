"""Configuration management for termhost.

Loads settings from a YAML configuration file with environment variable
overrides for deployment values (ports, storage paths). Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/termhost.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8099, ge=1, le=65535)


class TerminalConfig(BaseModel):
    command: str = Field(default="claude", description="Program launched in every session")
    cwd: str = Field(default="/homeassistant")
    home: str = Field(default="/root")
    term_name: str = Field(default="xterm-256color")
    cols: int = Field(default=120, gt=0)
    rows: int = Field(default=40, gt=0)
    buffer_size: int = Field(default=5000, gt=0, description="Backlog bound, in output chunks")


class StorageConfig(BaseModel):
    sessions_dir: Path = Field(default=Path("/data/sessions"))
    launch_config_path: Path = Field(default=Path("/data/server-config.json"))


class ClientConfig(BaseModel):
    base_url: str = Field(default="http://localhost:8099")
    timeout: float = Field(default=10.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the termhost server and CLI.

    Values come from, highest priority first: ``TERMHOST_*`` environment
    variables (``__`` separates nested keys), a ``.env`` file, keyword
    arguments (the YAML file when built by :func:`load_settings`), and
    the defaults below.
    """

    model_config = SettingsConfigDict(
        env_prefix="TERMHOST_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Deployment environment wins over the checked-in YAML
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Build :class:`Settings` from a YAML file plus the environment.

    A missing file is not an error: defaults and environment variables
    are used, and a warning is logged.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    file_values: dict[str, Any] = {}
    if path.is_file():
        with path.open() as f:
            file_values = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults", path)

    _apply_addon_env(file_values)
    return Settings(**file_values)


def _apply_addon_env(values: dict[str, Any]) -> None:
    # Home Assistant publishes the ingress port without our prefix
    ingress_port = os.environ.get("INGRESS_PORT")
    if not ingress_port:
        return
    try:
        port = int(ingress_port)
    except ValueError:
        logger.warning("Ignoring non-numeric INGRESS_PORT %r", ingress_port)
        return
    values["server"] = {**(values.get("server") or {}), "port": port}
