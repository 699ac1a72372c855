"""Exception hierarchy for maintask finder."""

from maintask_finder.models import EntityRef


class MainTaskFinderError(Exception):
    """Base class for all errors raised by maintask finder."""


class ConnectError(MainTaskFinderError):
    """Opening the tunnel or the database session failed."""


class TunnelAuthError(ConnectError):
    """The SSH server rejected the tunnel credentials."""


class TunnelRefusedError(ConnectError):
    """The SSH server could not be reached."""


class NoFreePortError(ConnectError):
    """Every port in the local forwarding range is already bound."""

    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"No free local port in range {start}-{end}")
        self.start = start
        self.end = end


class DatabaseAuthError(ConnectError):
    """The database rejected the login."""


class DatabaseRefusedError(ConnectError):
    """The database could not be reached."""


class VaultError(MainTaskFinderError):
    """The local credential store could not be used."""


class VaultCorruptError(VaultError):
    """The stored blob exists but cannot be decrypted or parsed."""


class VaultWriteError(VaultError):
    """The stored blob could not be written or removed."""


class ResolutionError(MainTaskFinderError):
    """A root-task resolution run ended without a root.

    Attributes:
        ref: Position where the walk stopped
        path: Every position visited, in order
    """

    def __init__(self, message: str, ref: EntityRef, path: list[EntityRef] | None = None) -> None:
        super().__init__(message)
        self.ref = ref
        self.path = list(path or [])


class NoParentError(ResolutionError):
    """The starting record has no task link and no parent pointer."""


class BrokenLinkError(ResolutionError):
    """A record in the chain points nowhere."""


class MissingRecordError(ResolutionError):
    """A task referenced by the chain does not exist."""


class CycleSuspectedError(ResolutionError):
    """The iteration bound was reached without finding a root."""
