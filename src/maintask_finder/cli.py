"""CLI for maintask finder."""

import sys
from typing import Annotated, Literal
from uuid import UUID

import structlog
from cyclopts import App, Parameter

from maintask_finder.config import Settings, get_config, load_settings
from maintask_finder.config_commands import config_app
from maintask_finder.exceptions import ConnectError
from maintask_finder.models import StartRef
from maintask_finder.prompts import parse_reference
from maintask_finder.session_commands import session_app
from maintask_finder.shell import obtain_credentials, resolve_once, run_shell, save_session
from maintask_finder.tunnel import TunnelConnectionManager
from maintask_finder.vault import CredentialVault

logger = structlog.get_logger()

EXIT_FOUND = 0
EXIT_NOT_RESOLVED = 1
EXIT_CONNECT_OR_INPUT = 2
EXIT_UNEXPECTED = 3

app = App(
    help="MainTask finder - resolve the root task of a workflow assignment or task",
)

app.command(config_app)
app.command(session_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_settings() -> Settings:
    """Get typed settings from the local/global configuration."""
    return load_settings(get_config())


def get_vault(settings: Settings) -> CredentialVault:
    return CredentialVault(vault_dir=settings.vault_dir)


def get_manager(settings: Settings) -> TunnelConnectionManager:
    return TunnelConnectionManager(
        port_range=settings.port_range,
        command_timeout=settings.command_timeout,
        db_connect_timeout=settings.db_connect_timeout,
        tunnel_connect_timeout=settings.tunnel_connect_timeout,
    )


@app.command
def shell() -> None:
    """Connect and look up root tasks interactively."""
    settings = get_settings()
    sys.exit(run_shell(get_manager(settings), get_vault(settings), settings))


@app.default
def default() -> None:
    """Run the interactive shell."""
    shell()


@app.command
def resolve(link: str, discriminator: UUID | None = None) -> None:
    """Resolve the root task for one card link and exit.

    Args:
        link: Card URL, or a bare record ID when --discriminator is given
        discriminator: Type discriminator of the starting record
    """
    try:
        start = _start_ref(link, discriminator)
    except ValueError as e:
        print(e)
        sys.exit(EXIT_CONNECT_OR_INPUT)

    settings = get_settings()
    manager = get_manager(settings)
    try:
        vault = get_vault(settings)
        creds = obtain_credentials(vault)
        with manager.session(creds) as session:
            save_session(vault, creds)
            root_id = resolve_once(session, start, settings)
    except ConnectError as e:
        print(f"Connection failed: {e}")
        sys.exit(EXIT_CONNECT_OR_INPUT)
    except Exception as e:
        logger.exception("Unexpected error", start_id=start.id)
        print(f"\nCritical error: {e}")
        if e.__cause__ is not None:
            print(f"Details: {e.__cause__}")
        sys.exit(EXIT_UNEXPECTED)
    finally:
        manager.close()

    sys.exit(EXIT_FOUND if root_id is not None else EXIT_NOT_RESOLVED)


def _start_ref(link: str, discriminator: UUID | None) -> StartRef:
    """Build the starting reference from a card URL, or a bare ID plus --discriminator."""
    link = link.strip()
    if discriminator is None:
        return parse_reference(link)
    if not link.isdigit():
        raise ValueError("--discriminator can only be combined with a bare record ID, not a card link")
    return StartRef(id=int(link), discriminator=discriminator)


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    app(tokens)


if __name__ == "__main__":
    app.meta()
