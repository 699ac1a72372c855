"""Saved session commands for maintask finder CLI."""

from cyclopts import App

from maintask_finder.exceptions import VaultCorruptError

session_app = App(name="session", help="Manage the saved connection session")


@session_app.command
def show() -> None:
    """Show the saved session without secrets."""
    from maintask_finder.cli import get_settings, get_vault
    from maintask_finder.shell import describe

    vault = get_vault(get_settings())
    try:
        creds = vault.load()
    except VaultCorruptError as e:
        print(f"Saved session is damaged: {e}")
        return

    if creds is None:
        print("No saved session")
        return

    print(f"Saved session ({vault.path}):\n")
    print(f"  {describe(creds)}")


@session_app.command
def clear() -> None:
    """Delete the saved session."""
    from maintask_finder.cli import get_settings, get_vault
    from maintask_finder.shell import clear_session

    clear_session(get_vault(get_settings()))
