"""Load gate configuration from YAML and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".cmdgate"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.yaml"
DEFAULT_STATE_DIR = DEFAULT_HOME / "state"
DEFAULT_OVERRIDE_PHRASE = "BYPASS GATE"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    """Raised when the config file cannot be parsed."""


@dataclass
class GateConfig:
    """Runtime settings for the gate and its hooks."""

    disabled: bool = False
    state_dir: Path = DEFAULT_STATE_DIR
    override_phrase: str = DEFAULT_OVERRIDE_PHRASE
    # Permission modes the gate enforces in; empty means every mode
    enforce_modes: list[str] = field(default_factory=list)
    log_level: str = "INFO"
    rules: list[dict] = field(default_factory=list)

    # Source info
    file_path: str = ""


def env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def find_config_file(path: str | Path | None = None) -> Path | None:
    """Locate the config file.

    Args:
        path: Explicit path. Falls back to ``$CMDGATE_CONFIG`` and then
            ``~/.cmdgate/config.yaml``.

    Returns:
        Path to an existing config file, or None.
    """
    candidate = path or os.environ.get("CMDGATE_CONFIG") or DEFAULT_CONFIG_PATH
    p = Path(candidate).expanduser()
    return p if p.is_file() else None


def parse_config(content: str) -> dict:
    """Parse YAML config text into a mapping.

    Raises:
        ConfigError: If the YAML is invalid or not a mapping.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config must be a YAML mapping (key: value pairs).")
    return data


def load_config(path: str | Path | None = None) -> GateConfig:
    """Build the effective configuration.

    Values come from the config file (if any), then environment overrides:
    ``CMDGATE_DISABLE``, ``CMDGATE_STATE_DIR`` and ``CMDGATE_LOG_LEVEL``.

    Raises:
        ConfigError: If the config file exists but cannot be parsed.
    """
    config = GateConfig()

    file_path = find_config_file(path)
    if file_path is not None:
        try:
            content = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {file_path}: {e}") from e
        data = parse_config(content)
        config.file_path = str(file_path)

        disabled = data.get("disabled", False)
        if isinstance(disabled, bool):
            config.disabled = disabled
        else:
            logger.warning("Ignoring 'disabled' in %s: expected true or false", file_path)
        if data.get("state_dir"):
            config.state_dir = Path(str(data["state_dir"])).expanduser()
        if data.get("override_phrase"):
            config.override_phrase = str(data["override_phrase"]).strip()
        enforce_modes = data.get("enforce_modes", []) or []
        if isinstance(enforce_modes, list):
            config.enforce_modes = [str(m) for m in enforce_modes]
        else:
            logger.warning("Ignoring 'enforce_modes' in %s: expected a list", file_path)
        config.log_level = str(data.get("log_level", config.log_level))

        rules = data.get("rules", []) or []
        if isinstance(rules, list):
            config.rules = rules
        else:
            logger.warning("Ignoring 'rules' in %s: expected a list", file_path)

    if env_flag("CMDGATE_DISABLE"):
        config.disabled = True
    if os.environ.get("CMDGATE_STATE_DIR"):
        config.state_dir = Path(os.environ["CMDGATE_STATE_DIR"]).expanduser()
    if os.environ.get("CMDGATE_LOG_LEVEL"):
        config.log_level = os.environ["CMDGATE_LOG_LEVEL"]

    return config


def load_config_or_default(path: str | Path | None = None) -> GateConfig:
    """Load the config, falling back to defaults when the file is broken."""
    try:
        return load_config(path)
    except ConfigError as e:
        logger.warning("Using default configuration: %s", e)
        config = GateConfig()
        if os.environ.get("CMDGATE_STATE_DIR"):
            config.state_dir = Path(os.environ["CMDGATE_STATE_DIR"]).expanduser()
        config.disabled = env_flag("CMDGATE_DISABLE")
        return config
