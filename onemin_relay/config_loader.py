"""YAML configuration for the relay, with ``.env`` and environment substitution.

A config file ``configs/config_<name>.yaml`` pairs with ``configs/.env_<name>``;
any other file name pairs with a plain ``.env`` beside it. Placeholders such as
``${ONEMIN_API_KEY}`` are filled from that file first, then from the process
environment.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("onemin-relay")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_PATH = os.getenv("ONEMIN_RELAY_CONFIG") or DEFAULT_CONFIG_PATH

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")
_CONFIG_PREFIX = "config_"


def resolve_config_path(path: str) -> Path:
    """Anchor a relative path at the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """The ``.env`` file that goes with ``config_path`` unless one is given."""
    if env_path:
        return resolve_config_path(env_path)
    name = config_path.stem
    if name.startswith(_CONFIG_PREFIX):
        return config_path.parent / f".env_{name[len(_CONFIG_PREFIX):]}"
    return config_path.parent / ".env"


def load_env_values(env_path: Path) -> dict[str, str]:
    """Read a ``.env`` file into a dict. ``os.environ`` is left untouched."""
    if not env_path.exists():
        return {}
    return {
        key: value
        for key, value in dotenv_values(env_path).items()
        if value is not None
    }


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Read the relay configuration.

    Args:
        path: Config file; ``ONEMIN_RELAY_CONFIG`` or the bundled default when
            omitted. Relative paths are taken from the project root.
        env_path: ``.env`` file to use instead of the one paired with ``path``.
        substitute_env: Fill ``${VAR}`` placeholders.

    Raises:
        ConfigurationError: If the file is missing or is not a YAML mapping.
    """
    config_path = resolve_config_path(path or CONFIG_PATH)
    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping at the top level"
        )

    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        env_values = load_env_values(env_file)
        if env_values:
            logger.info(f"Using {len(env_values)} values from {env_file}")
        data = _substitute_env_vars(data, env_values)

    return data


def _substitute_env_vars(
    obj: Any, env_values: Mapping[str, str] | None = None
) -> Any:
    """Fill ``${VAR}`` and ``$VAR`` placeholders in every string of ``obj``.

    ``env_values`` win over the process environment. An unset variable keeps
    its literal placeholder and logs a warning.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, env_values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if not isinstance(obj, str):
        return obj

    def _lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = env_values.get(name, os.getenv(name))
        if value is None:
            logger.warning(
                f"Environment variable '{name}' is not set; keeping {match.group(0)!r}. "
                f"Backend calls using it will likely fail."
            )
            return match.group(0)
        return value

    return _ENV_PATTERN.sub(_lookup, obj)


def get_section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Return a config section as a mapping, treating missing or null as empty."""
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return section


def get_server_address(config: Mapping[str, Any]) -> tuple[str, int]:
    """Resolve the bind address; ONEMIN_RELAY_HOST/PORT take priority."""
    proxy_settings = get_section(config, "proxy_settings")
    server_cfg = proxy_settings.get("server") or {}

    host = os.getenv("ONEMIN_RELAY_HOST") or str(server_cfg.get("host", "127.0.0.1"))

    port_raw = os.getenv("ONEMIN_RELAY_PORT") or server_cfg.get("port", 8000)
    try:
        port = int(port_raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid server port {port_raw!r}, falling back to 8000")
        port = 8000
    return host, port
