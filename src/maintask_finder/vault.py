"""Encrypted local storage for the last successful connection parameters."""

import base64
import getpass
import json
import os
import secrets
import socket
from pathlib import Path

import structlog
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from maintask_finder.exceptions import VaultCorruptError, VaultWriteError
from maintask_finder.models import ConnectionCredentials

logger = structlog.get_logger()

DEFAULT_VAULT_DIR = Path.home() / ".maintask-finder" / "session"
CREDENTIALS_FILE = "credentials.dat"
KEY_FILE = "vault.key"
KDF_ITERATIONS = 390_000


def current_identity() -> str:
    """Return the identity the vault key is bound to (``user@host``)."""
    return f"{getpass.getuser()}@{socket.gethostname()}"


class CredentialVault:
    """Stores one ConnectionCredentials record encrypted under a per-user key.

    The Fernet key is derived from a random secret kept in a key file readable
    only by its owner, salted with the OS identity. A blob written by another
    account or on another machine fails to decrypt and is reported as corrupt
    rather than as missing.
    """

    def __init__(self, vault_dir: Path | None = None, identity: str | None = None) -> None:
        """Initialize the vault.

        Args:
            vault_dir: Directory holding the blob and key file (defaults to ~/.maintask-finder/session)
            identity: Identity string the key is bound to (defaults to the current OS user and host)
        """
        self.vault_dir = Path(vault_dir) if vault_dir is not None else DEFAULT_VAULT_DIR
        self.path = self.vault_dir / CREDENTIALS_FILE
        self.key_path = self.vault_dir / KEY_FILE
        self.identity = identity or current_identity()
        logger.debug("Credential vault initialized", path=str(self.path))

    def exists(self) -> bool:
        return self.path.exists()

    def _read_secret(self) -> bytes | None:
        if not self.key_path.exists():
            return None
        return self.key_path.read_bytes()

    def _create_secret(self) -> bytes:
        secret = secrets.token_bytes(32)
        fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(secret)
        logger.debug("Created vault key file", key_path=str(self.key_path))
        return secret

    def _fernet(self, secret: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.identity.encode("utf-8"),
            iterations=KDF_ITERATIONS,
        )
        return Fernet(base64.urlsafe_b64encode(kdf.derive(secret)))

    def load(self) -> ConnectionCredentials | None:
        """Load the stored credentials.

        Returns:
            The stored credentials, or None if nothing is stored

        Raises:
            VaultCorruptError: The blob exists but cannot be decrypted or parsed
        """
        if not self.path.exists():
            logger.debug("No stored credentials", path=str(self.path))
            return None

        try:
            token = self.path.read_bytes()
            secret = self._read_secret()
        except OSError as e:
            logger.error("Failed to read stored credentials", error=str(e))
            raise VaultCorruptError(f"Failed to read {self.path}: {e}") from e

        if secret is None:
            raise VaultCorruptError(f"Key file {self.key_path} is missing")

        try:
            plaintext = self._fernet(secret).decrypt(token)
        except InvalidToken as e:
            logger.warning("Stored credentials failed to decrypt", path=str(self.path))
            raise VaultCorruptError("Stored session cannot be decrypted by this account") from e

        try:
            creds = ConnectionCredentials.from_dict(json.loads(plaintext.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning("Stored credentials are malformed", error=str(e))
            raise VaultCorruptError(f"Stored session is malformed: {e}") from e

        logger.info("Loaded stored credentials", db_host=creds.db_host, db_port=creds.db_port)
        return creds

    def save(self, creds: ConnectionCredentials) -> None:
        """Encrypt and store credentials.

        Raises:
            VaultWriteError: The vault directory, key file or blob could not be written
        """
        payload = json.dumps(creds.to_dict(), indent=2).encode("utf-8")
        try:
            self.vault_dir.mkdir(parents=True, exist_ok=True)
            secret = self._read_secret() or self._create_secret()
            token = self._fernet(secret).encrypt(payload)
            tmp_path = self.path.with_suffix(".tmp")
            tmp_path.write_bytes(token)
            os.chmod(tmp_path, 0o600)
            tmp_path.replace(self.path)
        except OSError as e:
            logger.error("Failed to save credentials", error=str(e))
            raise VaultWriteError(f"Failed to save session to {self.path}: {e}") from e
        logger.info("Saved credentials", path=str(self.path))

    def clear(self) -> bool:
        """Delete the stored blob.

        Returns:
            True if a blob was removed, False if there was none

        Raises:
            VaultWriteError: The blob exists but could not be removed
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.debug("No stored credentials to clear")
            return False
        except OSError as e:
            logger.error("Failed to clear credentials", error=str(e))
            raise VaultWriteError(f"Failed to delete {self.path}: {e}") from e
        logger.info("Cleared stored credentials", path=str(self.path))
        return True
