"""Console input helpers: card URL parsing and credential prompting."""

import getpass
import re
from collections.abc import Callable
from typing import Any
from uuid import UUID

from maintask_finder.models import ConnectionCredentials, StartRef

ID_PATTERN = re.compile(r"/(\d+)$")
DISCRIMINATOR_PATTERN = re.compile(r"card/([0-9a-fA-F\-]{36})")

YES_ANSWERS = {"да", "д", "yes", "y", "1"}

HARD_DEFAULTS = ConnectionCredentials()

InputFunc = Callable[[str], str]


def parse_reference(text: str) -> StartRef:
    """Extract the record ID and discriminator from a card URL.

    Raises:
        ValueError: Either part is missing or malformed
    """
    text = text.strip()
    id_match = ID_PATTERN.search(text)
    discriminator_match = DISCRIMINATOR_PATTERN.search(text)
    if not id_match or not discriminator_match:
        raise ValueError("Could not extract ID or Discriminator from the link. Check the format.")
    return StartRef(id=int(id_match.group(1)), discriminator=UUID(discriminator_match.group(1)))


def is_yes(answer: str, default: bool = True) -> bool:
    answer = answer.strip().lower()
    if not answer:
        return default
    return answer in YES_ANSWERS


def merge_credentials(overrides: dict[str, Any], prior: ConnectionCredentials | None = None) -> ConnectionCredentials:
    """Merge user input over a prior session over hard defaults.

    A value of None or an empty string in ``overrides`` means "not entered" and
    falls through to the prior session value, then to the hard default. This
    applies to passwords too: pressing Enter keeps the remembered password.
    """
    base = prior or HARD_DEFAULTS
    merged = base.to_dict()
    for key, value in overrides.items():
        if key not in merged:
            raise ValueError(f"Unknown credential field: {key}")
        if value is None or value == "":
            continue
        merged[key] = value

    if not merged["use_tunnel"]:
        for key in ("tunnel_host", "tunnel_user", "tunnel_password"):
            merged[key] = ""
        merged["tunnel_port"] = HARD_DEFAULTS.tunnel_port
    return ConnectionCredentials(**merged)


def _ask(input_func: InputFunc, label: str, default: Any) -> str:
    return input_func(f"{label} [{default}]: ").strip()


def _ask_int(input_func: InputFunc, label: str, default: int) -> int | None:
    while True:
        answer = _ask(input_func, label, default)
        if not answer:
            return None
        try:
            return int(answer)
        except ValueError:
            print(f"{label} must be a number")


def prompt_credentials(
    prior: ConnectionCredentials | None = None,
    input_func: InputFunc = input,
    password_func: InputFunc = getpass.getpass,
) -> ConnectionCredentials:
    """Ask for connection parameters, offering the prior session as defaults."""
    print("Database connection setup")
    base = prior or HARD_DEFAULTS
    entered: dict[str, Any] = {}

    use_tunnel = is_yes(_ask(input_func, "Connect through SSH?", "yes" if base.use_tunnel else "no"), base.use_tunnel)
    entered["use_tunnel"] = use_tunnel

    if use_tunnel:
        entered["tunnel_host"] = _ask(input_func, "SSH host", base.tunnel_host)
        entered["tunnel_port"] = _ask_int(input_func, "SSH port", base.tunnel_port)
        entered["tunnel_user"] = _ask(input_func, "SSH user", base.tunnel_user)
        entered["tunnel_password"] = password_func(f"SSH password [{'*' * 8 if base.tunnel_password else ''}]: ")

    # Without a tunnel and no remembered host, the database is most likely local
    db_host_default = base.db_host or ("" if use_tunnel else "localhost")
    entered["db_host"] = _ask(input_func, "Database host", db_host_default) or db_host_default
    entered["db_port"] = _ask_int(input_func, "Database port", base.db_port)
    entered["db_name"] = _ask(input_func, "Database name", base.db_name)
    entered["db_user"] = _ask(input_func, "Database user", base.db_user)
    entered["db_password"] = password_func(f"Database password [{'*' * 8 if base.db_password else ''}]: ")

    return merge_credentials(entered, prior)
