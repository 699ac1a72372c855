"""Tests for YAML configuration and typed settings."""

from pathlib import Path

import pytest
import yaml

from maintask_finder.config import Config, Settings, load_settings


@pytest.fixture
def global_dir(tmp_path: Path) -> Path:
    return tmp_path / "home" / ".maintask-finder"


@pytest.fixture
def local_config(tmp_path: Path, global_dir: Path) -> Config:
    """Create a local config with a separate global directory."""
    return Config(config_dir=tmp_path / "project" / ".maintask-finder", global_dir=global_dir)


def test_set_persists_to_yaml(local_config: Config) -> None:
    """Test that set writes the YAML file."""
    local_config.set("resolver.max_iterations", "50")

    with open(local_config.config_file) as f:
        assert yaml.safe_load(f) == {"resolver.max_iterations": "50"}
    assert local_config.get("resolver.max_iterations") == "50"


def test_set_unknown_key(local_config: Config) -> None:
    """Test that unknown keys are rejected."""
    with pytest.raises(ValueError, match="Unknown config key"):
        local_config.set("db.password", "secret")


def test_unset(local_config: Config) -> None:
    """Test removing a value."""
    local_config.set("db.command_timeout", "10")
    assert local_config.unset("db.command_timeout") is True
    assert local_config.get("db.command_timeout") is None
    assert local_config.unset("db.command_timeout") is False


def test_local_falls_back_to_global(tmp_path: Path, global_dir: Path) -> None:
    """Test lookup order: local, then global."""
    global_config = Config(use_global=True, config_dir=global_dir)
    global_config.set("db.command_timeout", "60")
    global_config.set("resolver.max_iterations", "200")

    local = Config(config_dir=tmp_path / "project", global_dir=global_dir)
    local.set("resolver.max_iterations", "10")

    assert local.get("db.command_timeout") == "60"
    assert local.get("resolver.max_iterations") == "10"
    assert local.list() == {"db.command_timeout": "60", "resolver.max_iterations": "10"}


def test_invalid_yaml_raises(tmp_path: Path, global_dir: Path) -> None:
    """Test that a broken config file is reported."""
    config_dir = tmp_path / "project"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("key: [unclosed")

    with pytest.raises(ValueError, match="Failed to load config"):
        Config(config_dir=config_dir, global_dir=global_dir)


def test_load_settings_defaults(local_config: Config) -> None:
    """Test that an empty config yields the defaults."""
    settings = load_settings(local_config)
    defaults = Settings()
    assert settings.port_range == (54321, 54400)
    assert settings.max_iterations == 100
    assert settings.command_timeout == 30
    assert settings.vault_dir == defaults.vault_dir


def test_load_settings_overrides(local_config: Config) -> None:
    """Test that configured values are converted."""
    local_config.set("tunnel.port_range_start", "60000")
    local_config.set("tunnel.port_range_end", "60010")
    local_config.set("resolver.max_iterations", "7")
    local_config.set("vault.dir", "~/vault")

    settings = load_settings(local_config)

    assert settings.port_range == (60000, 60010)
    assert settings.max_iterations == 7
    assert settings.vault_dir == Path("~/vault").expanduser()


def test_set_rejects_non_integer(local_config: Config) -> None:
    """Test that numeric keys refuse other values before anything is written."""
    with pytest.raises(ValueError, match="db.command_timeout must be an integer"):
        local_config.set("db.command_timeout", "soon")
    with pytest.raises(ValueError, match="resolver.max_iterations must be positive"):
        local_config.set("resolver.max_iterations", "0")
    assert not local_config.config_file.exists()


def test_set_normalizes_integers(local_config: Config) -> None:
    local_config.set("tunnel.connect_timeout", " 20 ")
    assert local_config.get("tunnel.connect_timeout") == "20"


def test_load_settings_rejects_hand_edited_non_integer(tmp_path: Path, global_dir: Path) -> None:
    """Test that a non-numeric value written straight into the YAML file names the offending key."""
    config_dir = tmp_path / "project" / ".maintask-finder"
    config_dir.mkdir(parents=True)
    (config_dir / "config.yaml").write_text(yaml.safe_dump({"db.command_timeout": "soon"}))

    config = Config(config_dir=config_dir, global_dir=global_dir)
    with pytest.raises(ValueError, match="db.command_timeout"):
        load_settings(config)
