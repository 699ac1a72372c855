"""Interactive session: credentials, connection, and the lookup loop."""

import getpass

import structlog

from maintask_finder.backends import PostgresSource
from maintask_finder.config import Settings
from maintask_finder.exceptions import ConnectError, ResolutionError, VaultCorruptError, VaultError
from maintask_finder.models import ConnectionCredentials, ResolutionStep, StartRef
from maintask_finder.prompts import InputFunc, is_yes, parse_reference, prompt_credentials
from maintask_finder.resolver import RootTaskResolver
from maintask_finder.tunnel import LiveSession, TunnelConnectionManager
from maintask_finder.vault import CredentialVault

logger = structlog.get_logger()

EXIT_WORDS = {"exit", "quit", "выход"}
CLEAR_WORDS = {"clear", "очистить"}


def render_step(step: ResolutionStep) -> None:
    """Print one resolver progress event."""
    if step.event == "start":
        label = "Initial lookup" if step.iteration == 0 else f"Iteration {step.iteration}"
        suffix = f" ({step.detail})" if step.detail else ""
        print(f"[{label}] Current element: {step.ref}{suffix}")
    elif step.event == "move":
        detail = f"{step.detail}: " if step.detail else ""
        print(f"  -> {detail}{step.target}")
    elif step.event == "found":
        print(f"\nRoot task found! {step.detail}")
    elif step.event == "failed":
        print(f"\nError at {step.ref}: {step.detail}")


def describe(creds: ConnectionCredentials) -> str:
    """One-line summary of a credential record, without secrets."""
    db = f"{creds.db_user}@{creds.db_host}:{creds.db_port}/{creds.db_name}"
    if creds.use_tunnel:
        return f"DB={db} via SSH {creds.tunnel_user}@{creds.tunnel_host}:{creds.tunnel_port}"
    return f"DB={db}"


def load_last_session(vault: CredentialVault) -> ConnectionCredentials | None:
    """Load the saved session, reporting a damaged one instead of failing."""
    try:
        creds = vault.load()
    except VaultCorruptError as e:
        print(f"Saved session is damaged: {e}\n")
        return None
    if creds is not None:
        print(f"Found last session: {describe(creds)}\n")
    return creds


def obtain_credentials(
    vault: CredentialVault,
    input_func: InputFunc = input,
    password_func: InputFunc = getpass.getpass,
) -> ConnectionCredentials:
    """Reuse the saved session if the user agrees, otherwise prompt."""
    last = load_last_session(vault)
    if last is not None and is_yes(input_func("Connect with the last session? (yes/no) [yes]: ")):
        print("\nUsing saved connection parameters\n")
        return last
    return prompt_credentials(last, input_func=input_func, password_func=password_func)


def save_session(vault: CredentialVault, creds: ConnectionCredentials) -> None:
    try:
        vault.save(creds)
    except VaultError as e:
        print(f"\nCould not save the session: {e}\n")
        return
    print("\nConnection parameters saved locally (encrypted for your account)")
    print(f"File: {vault.path}")
    print("To forget the session, enter 'clear' at the link prompt or run 'mtf session clear'\n")


def connect(
    manager: TunnelConnectionManager,
    vault: CredentialVault,
    creds: ConnectionCredentials,
    input_func: InputFunc = input,
    password_func: InputFunc = getpass.getpass,
) -> LiveSession | None:
    """Open a session, offering to re-enter parameters after each failure.

    The credentials that succeed are saved to the vault.

    Returns:
        The live session, or None if the user gave up
    """
    while True:
        try:
            session = manager.open(creds)
        except ConnectError as e:
            print(f"\nConnection failed: {e}")
            if not is_yes(input_func("Enter connection parameters again? (yes/no) [yes]: ")):
                return None
            creds = prompt_credentials(creds, input_func=input_func, password_func=password_func)
            continue

        if session.local_port is not None:
            print(f"SSH tunnel: 127.0.0.1:{session.local_port} <-> {creds.db_host}:{creds.db_port}")
        print("Connected to the database\n")
        save_session(vault, creds)
        return session


def resolve_once(session: LiveSession, start: StartRef, settings: Settings) -> int | None:
    """Run one resolution and render it.

    Returns:
        The root task ID, or None if the resolution failed
    """
    print(f"\nExtracted: ID={start.id}, Discriminator={start.discriminator}\n")
    resolver = RootTaskResolver(
        PostgresSource(session.connection),
        max_iterations=settings.max_iterations,
        on_step=render_step,
    )
    try:
        return resolver.resolve(start)
    except ResolutionError:
        # Already rendered through the step callback
        return None


def clear_session(vault: CredentialVault) -> None:
    try:
        removed = vault.clear()
    except VaultError as e:
        print(f"\nCould not clear the session: {e}")
        return
    if removed:
        print("\nSession cleared. Connection parameters will be asked for on the next run.")
    else:
        print("\nNo saved session found.")


def lookup_loop(session: LiveSession, vault: CredentialVault, settings: Settings, input_func: InputFunc = input) -> None:
    """Read card links until the user leaves."""
    while True:
        print("\nEnter a task/assignment link ('exit' to quit, 'clear' to forget the session):")
        try:
            text = input_func("> ").strip()
        except EOFError:
            break

        if not text or text.lower() in EXIT_WORDS:
            break
        if text.lower() in CLEAR_WORDS:
            clear_session(vault)
            continue

        try:
            start = parse_reference(text)
        except ValueError as e:
            print(f"{e}")
            continue

        try:
            resolve_once(session, start, settings)
        except Exception as e:
            logger.exception("Lookup failed", start_id=start.id)
            print(f"\nError while processing: {e}")
            if e.__cause__ is not None:
                print(f"Details: {e.__cause__}")


def run_shell(
    manager: TunnelConnectionManager,
    vault: CredentialVault,
    settings: Settings,
    input_func: InputFunc = input,
    password_func: InputFunc = getpass.getpass,
) -> int:
    """Run the whole interactive session. The session is always torn down on exit."""
    print("MainTask finder\n")
    try:
        creds = obtain_credentials(vault, input_func=input_func, password_func=password_func)
        session = connect(manager, vault, creds, input_func=input_func, password_func=password_func)
        if session is None:
            return 2
        lookup_loop(session, vault, settings, input_func=input_func)
        return 0
    except EOFError:
        return 0
    except Exception as e:
        logger.exception("Unexpected error")
        print(f"\nCritical error: {e}")
        if e.__cause__ is not None:
            print(f"Details: {e.__cause__}")
        return 1
    finally:
        manager.close()
