"""Configuration commands for maintask finder CLI."""

import sys

from cyclopts import App

from maintask_finder.config import KNOWN_KEYS, get_config

config_app = App(name="config", help="Manage configuration")


def _scope(global_: bool) -> str:
    return "global" if global_ else "local"


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: One of the keys shown by ``config list --defaults``
        value: New value; every key except vault.dir takes a positive integer
        global_: If True, set in global config. If False, set in local config.
    """
    config = get_config(use_global=global_)
    try:
        config.set(key, value)
    except ValueError as e:
        print(e)
        sys.exit(2)
    print(f"Set {key} = {config.get(key)} ({_scope(global_)})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Unset a configuration setting so its default applies again.

    Args:
        key: Configuration key
        global_: If True, unset from global config. If False, unset from local config.
    """
    config = get_config(use_global=global_)
    if not config.unset(key):
        print(f"{key} is not set in {_scope(global_)} config")
        return
    fallback = config.get(key, KNOWN_KEYS.get(key))
    print(f"Unset {key} ({_scope(global_)}), now {fallback}")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Get the value of a configuration setting, falling back to its default."""
    config = get_config(use_global=global_)
    value = config.get(key)
    if value is not None:
        print(f"{key} = {value}")
    elif key in KNOWN_KEYS:
        print(f"{key} = {KNOWN_KEYS[key]} (default)")
    else:
        print(f"{key} is not set")


@config_app.command(name="list")
def list_config(global_: bool = False, defaults: bool = False) -> None:
    """List all configuration settings.

    Args:
        global_: If True, list global config only. If False, list merged config.
        defaults: Also show keys that are not set, with their default values.
    """
    config = get_config(use_global=global_)
    settings = config.list()
    if defaults:
        settings = {**KNOWN_KEYS, **settings}

    if not settings:
        scope = "global" if global_ else "local"
        print(f"No {scope} configuration settings")
        return

    scope = "Global" if global_ else "Configuration"
    print(f"{scope} settings:\n")
    for key, value in settings.items():
        print(f"{key} = {value}")
