"""Launch configuration for session programs.

The add-on writes its options (API key, model, permission mode) to a
JSON file. It is re-read for every new session; when it cannot be read
the server falls back to environment-derived defaults instead of
refusing to start sessions.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from termhost.domain.models import LaunchConfig

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_CONFIG_PATH = Path("/data/server-config.json")
DEFAULT_MODEL = "sonnet"


def default_launch_config() -> LaunchConfig:
    return LaunchConfig(
        anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
        model=DEFAULT_MODEL,
        permission_mode="default",
        auto_backup=True,
    )


def load_launch_config(path: Path | str = DEFAULT_LAUNCH_CONFIG_PATH) -> LaunchConfig:
    """Read the launch configuration, falling back to defaults on any error."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        return LaunchConfig.model_validate(raw)
    except FileNotFoundError:
        logger.debug("Launch config %s not found, using defaults", path)
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Unreadable launch config %s (%s), using defaults", path, e)
    return default_launch_config()


def build_args(config: LaunchConfig) -> list[str]:
    """Translate the launch configuration into command-line flags."""
    args: list[str] = []

    if config.permission_mode == "bypassPermissions":
        args.append("--dangerously-skip-permissions")
    elif config.permission_mode == "plan":
        args.extend(["--permission-mode", "plan"])

    if config.model and config.model != DEFAULT_MODEL:
        args.extend(["--model", config.model])

    return args


def build_env(
    config: LaunchConfig,
    home: str,
    term_name: str = "xterm-256color",
    base_env: dict[str, str] | None = None,
) -> dict[str, str]:
    """Build the session environment on top of the server's own.

    Inherited variables such as ``SUPERVISOR_TOKEN`` pass through untouched.
    """
    env = dict(os.environ if base_env is None else base_env)
    env["ANTHROPIC_API_KEY"] = config.anthropic_api_key
    env["TERM"] = term_name
    env["HOME"] = home
    return env
