"""Configuration management for maintask finder using YAML files."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from maintask_finder.resolver import DEFAULT_MAX_ITERATIONS
from maintask_finder.tunnel import DEFAULT_COMMAND_TIMEOUT, DEFAULT_CONNECT_TIMEOUT, DEFAULT_PORT_RANGE
from maintask_finder.vault import DEFAULT_VAULT_DIR

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".maintask-finder"

KNOWN_KEYS = {
    "tunnel.port_range_start": str(DEFAULT_PORT_RANGE[0]),
    "tunnel.port_range_end": str(DEFAULT_PORT_RANGE[1]),
    "tunnel.connect_timeout": str(DEFAULT_CONNECT_TIMEOUT),
    "db.command_timeout": str(DEFAULT_COMMAND_TIMEOUT),
    "db.connect_timeout": str(DEFAULT_CONNECT_TIMEOUT),
    "resolver.max_iterations": str(DEFAULT_MAX_ITERATIONS),
    "vault.dir": str(DEFAULT_VAULT_DIR),
}

PATH_KEYS = {"vault.dir"}


class Config:
    """Configuration manager using YAML file storage.

    Supports both local (directory-level) and global (user-level) configuration.
    Local config is stored in .maintask-finder/config.yaml in the current directory.
    Global config is stored in ~/.maintask-finder/config.yaml.

    When reading, values are looked up in local config first, then global config.
    Connection secrets never go here; they live in the credential vault.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None, global_dir: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
            global_dir: Custom global config directory (defaults to ~/.maintask-finder)
        """
        global_dir = Path(global_dir) if global_dir is not None else Path.home() / CONFIG_DIR_NAME
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = global_dir
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"
        self._config: dict[str, Any] = self._load()

        # For local config, also load global config as fallback
        self._global_config: dict[str, Any] = {}
        global_config_file = global_dir / "config.yaml"
        if not self.is_global and global_config_file != self.config_file and global_config_file.exists():
            try:
                with open(global_config_file, "r") as f:
                    self._global_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _load(self) -> dict[str, Any]:
        """Load configuration from YAML file.

        Returns:
            Configuration dictionary
        """
        if not self.config_file.exists():
            logger.debug("Config file does not exist, initializing empty config")
            return {}

        try:
            with open(self.config_file, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.debug("Config loaded successfully", keys=list(config.keys()))
                return config
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config", error=str(e))
            raise ValueError(f"Failed to load config from {self.config_file}: {e}") from e

    def _save(self) -> None:
        """Save configuration to YAML file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
            logger.debug("Config saved successfully")
        except OSError as e:
            logger.error("Failed to save config", error=str(e))
            raise ValueError(f"Failed to save config to {self.config_file}: {e}") from e

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get a configuration value.

        For local config, checks local config first, then falls back to global config.

        Args:
            key: Configuration key
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        if key in self._config:
            logger.debug("Getting config value from local", key=key)
            return self._config[key]

        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]

        logger.debug("Config value not found", key=key)
        return default

    def set(self, key: str, value: str) -> None:
        """Set a configuration value.

        Args:
            key: Configuration key, one of KNOWN_KEYS
            value: Configuration value; every key except vault.dir takes a positive integer

        Raises:
            ValueError: Unknown key, or a value the key cannot take
        """
        if key not in KNOWN_KEYS:
            raise ValueError(f"Unknown config key: {key}. Known keys: {', '.join(KNOWN_KEYS)}")
        if key not in PATH_KEYS:
            value = _check_positive_int(key, value)
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> bool:
        """Remove a configuration value.

        Returns:
            True if the key was set in this scope
        """
        logger.debug("Unsetting config value", key=key)
        if key not in self._config:
            return False
        del self._config[key]
        self._save()
        return True

    def list(self) -> dict[str, str]:
        """List all configuration settings.

        For local config, merges global config with local config (local takes precedence).
        """
        if self.is_global:
            logger.debug("Listing global config values", count=len(self._config))
            return self._config.copy()
        merged = self._global_config.copy()
        merged.update(self._config)
        logger.debug("Listing merged config values", count=len(merged))
        return merged


@dataclass(frozen=True)
class Settings:
    """Typed view of the configuration with defaults applied."""

    port_range: tuple[int, int] = DEFAULT_PORT_RANGE
    tunnel_connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT
    db_connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    vault_dir: Path = DEFAULT_VAULT_DIR


def _check_positive_int(key: str, value: str) -> str:
    try:
        number = int(value)
    except ValueError as e:
        raise ValueError(f"Config key {key} must be an integer, got {value!r}") from e
    if number <= 0:
        raise ValueError(f"Config key {key} must be positive, got {number}")
    return str(number)


def _int_setting(config: Config, key: str) -> int:
    value = config.get(key, KNOWN_KEYS[key])
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Config key {key} must be an integer, got {value!r}") from e


def load_settings(config: Config) -> Settings:
    """Build typed settings from a configuration store."""
    return Settings(
        port_range=(_int_setting(config, "tunnel.port_range_start"), _int_setting(config, "tunnel.port_range_end")),
        tunnel_connect_timeout=_int_setting(config, "tunnel.connect_timeout"),
        command_timeout=_int_setting(config, "db.command_timeout"),
        db_connect_timeout=_int_setting(config, "db.connect_timeout"),
        max_iterations=_int_setting(config, "resolver.max_iterations"),
        vault_dir=Path(config.get("vault.dir", KNOWN_KEYS["vault.dir"])).expanduser(),
    )


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.

    Returns:
        Config instance
    """
    return Config(use_global=use_global)
