"""SSH tunnel and database session lifecycle."""

import select
import socket
import socketserver
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import paramiko
import psycopg2
import structlog

from maintask_finder.exceptions import (
    DatabaseAuthError,
    DatabaseRefusedError,
    NoFreePortError,
    TunnelAuthError,
    TunnelRefusedError,
)
from maintask_finder.models import ConnectionCredentials

logger = structlog.get_logger()

LOCALHOST = "127.0.0.1"
DEFAULT_PORT_RANGE = (54321, 54400)
DEFAULT_COMMAND_TIMEOUT = 30
DEFAULT_CONNECT_TIMEOUT = 15


def find_free_port(start: int, end: int) -> int:
    """Return the first port in ``start..end`` (inclusive) that can be bound on loopback.

    Raises:
        NoFreePortError: Every port in the range is taken
    """
    for port in range(start, end + 1):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((LOCALHOST, port))
        except OSError:
            logger.debug("Local port busy", port=port)
            continue
        finally:
            sock.close()
        return port
    raise NoFreePortError(start, end)


class _ForwardServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


class _ForwardHandler(socketserver.BaseRequestHandler):
    """Pipes one local TCP connection through a direct-tcpip SSH channel."""

    transport: paramiko.Transport
    remote_host: str
    remote_port: int

    def handle(self) -> None:
        try:
            channel = self.transport.open_channel(
                "direct-tcpip",
                (self.remote_host, self.remote_port),
                self.request.getpeername(),
            )
        except (paramiko.SSHException, OSError) as e:
            logger.warning("Tunnel channel request failed", remote_host=self.remote_host, error=str(e))
            return

        try:
            while True:
                readable, _, _ = select.select([self.request, channel], [], [])
                if self.request in readable:
                    data = self.request.recv(32768)
                    if not data:
                        break
                    channel.sendall(data)
                if channel in readable:
                    data = channel.recv(32768)
                    if not data:
                        break
                    self.request.sendall(data)
        except OSError as e:
            logger.debug("Tunnel channel closed", error=str(e))
        finally:
            channel.close()


class PortForwarder:
    """Forwards a local loopback port to a remote host/port over an SSH transport."""

    def __init__(self, transport: paramiko.Transport, local_port: int, remote_host: str, remote_port: int) -> None:
        self.local_port = local_port
        self.remote_host = remote_host
        self.remote_port = remote_port
        self._handler = type(
            "ForwardHandler",
            (_ForwardHandler,),
            {"transport": transport, "remote_host": remote_host, "remote_port": remote_port},
        )
        self._server: _ForwardServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_started(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        try:
            self._server = _ForwardServer((LOCALHOST, self.local_port), self._handler)
        except OSError as e:
            logger.debug("Local port taken before bind", port=self.local_port, error=str(e))
            raise NoFreePortError(self.local_port, self.local_port) from e
        self._thread = threading.Thread(target=self._server.serve_forever, name="port-forward", daemon=True)
        self._thread.start()
        logger.info(
            "Port forward started",
            local=f"{LOCALHOST}:{self.local_port}",
            remote=f"{self.remote_host}:{self.remote_port}",
        )

    def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Port forward stopped", local_port=self.local_port)


@dataclass
class LiveSession:
    """An open database session and the tunnel it runs through, if any."""

    credentials: ConnectionCredentials
    connection: Any = None
    ssh_client: paramiko.SSHClient | None = None
    forwarder: PortForwarder | None = None
    local_port: int | None = None

    @property
    def is_open(self) -> bool:
        return self.connection is not None and not self.connection.closed


class TunnelConnectionManager:
    """Opens and tears down one LiveSession at a time.

    The database session is opened only once the tunnel is forwarding, and
    closed before the tunnel is torn down.
    """

    def __init__(
        self,
        port_range: tuple[int, int] = DEFAULT_PORT_RANGE,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
        db_connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
        tunnel_connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        """Initialize the manager.

        Args:
            port_range: Inclusive range of local ports to forward from
            command_timeout: Statement timeout for database queries, in seconds
            db_connect_timeout: Database connect timeout, in seconds
            tunnel_connect_timeout: SSH connect and auth timeout, in seconds
        """
        start, end = port_range
        if start > end:
            raise ValueError(f"Invalid port range {start}-{end}")
        self.port_range = (start, end)
        self.command_timeout = command_timeout
        self.db_connect_timeout = db_connect_timeout
        self.tunnel_connect_timeout = tunnel_connect_timeout
        self._session: LiveSession | None = None

    @property
    def current(self) -> LiveSession | None:
        return self._session

    def open(self, creds: ConnectionCredentials) -> LiveSession:
        """Open a database session, through an SSH tunnel if requested.

        Any session previously opened by this manager is closed first.

        Raises:
            TunnelAuthError, TunnelRefusedError, NoFreePortError,
            DatabaseAuthError, DatabaseRefusedError: The step that failed
        """
        self.close()
        session = LiveSession(credentials=creds)
        try:
            host, port = creds.db_host, creds.db_port
            if creds.use_tunnel:
                session.ssh_client = self._connect_tunnel(creds)
                session.forwarder, session.local_port = self._start_forward(session.ssh_client, creds)
                host, port = LOCALHOST, session.local_port
            session.connection = self._connect_database(creds, host, port)
        except BaseException:
            self._teardown(session)
            raise

        self._session = session
        return session

    def close(self, session: LiveSession | None = None) -> None:
        """Tear down a session: database first, then port forward, then SSH.

        Never raises; safe on a half-opened or already closed session.
        """
        session = session if session is not None else self._session
        if session is None:
            return
        self._teardown(session)
        if session is self._session:
            self._session = None

    @contextmanager
    def session(self, creds: ConnectionCredentials) -> Iterator[LiveSession]:
        """Open a session for the duration of a ``with`` block."""
        live = self.open(creds)
        try:
            yield live
        finally:
            self.close(live)

    def _connect_tunnel(self, creds: ConnectionCredentials) -> paramiko.SSHClient:
        logger.info("Opening SSH connection", host=creds.tunnel_host, port=creds.tunnel_port, user=creds.tunnel_user)
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=creds.tunnel_host,
                port=creds.tunnel_port,
                username=creds.tunnel_user,
                password=creds.tunnel_password,
                timeout=self.tunnel_connect_timeout,
                auth_timeout=self.tunnel_connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            logger.error("SSH authentication failed", host=creds.tunnel_host, user=creds.tunnel_user)
            raise TunnelAuthError(f"SSH authentication failed for {creds.tunnel_user}@{creds.tunnel_host}") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            logger.error("SSH connection failed", host=creds.tunnel_host, port=creds.tunnel_port, error=str(e))
            raise TunnelRefusedError(
                f"SSH connection to {creds.tunnel_host}:{creds.tunnel_port} failed: {e}"
            ) from e
        logger.info("SSH connection established", host=creds.tunnel_host, port=creds.tunnel_port)
        return client

    def _start_forward(
        self, ssh_client: paramiko.SSHClient, creds: ConnectionCredentials
    ) -> tuple[PortForwarder, int]:
        start, end = self.port_range
        port = find_free_port(start, end)
        while True:
            forwarder = PortForwarder(ssh_client.get_transport(), port, creds.db_host, creds.db_port)
            try:
                forwarder.start()
            except NoFreePortError:
                # Another process bound the port between the scan and the bind
                try:
                    port = find_free_port(port + 1, end)
                except NoFreePortError:
                    raise NoFreePortError(start, end) from None
                continue
            return forwarder, port

    def _connect_database(self, creds: ConnectionCredentials, host: str, port: int) -> Any:
        logger.info("Connecting to database", host=host, port=port, dbname=creds.db_name, user=creds.db_user)
        try:
            connection = psycopg2.connect(
                host=host,
                port=port,
                dbname=creds.db_name,
                user=creds.db_user,
                password=creds.db_password,
                connect_timeout=self.db_connect_timeout,
                options=f"-c statement_timeout={self.command_timeout * 1000}",
            )
        except psycopg2.OperationalError as e:
            message = str(e).strip()
            if "authentication failed" in message.lower() or "password" in message.lower():
                logger.error("Database authentication failed", user=creds.db_user, dbname=creds.db_name)
                raise DatabaseAuthError(f"Database authentication failed for {creds.db_user}: {message}") from e
            logger.error("Database connection failed", host=host, port=port, error=message)
            raise DatabaseRefusedError(f"Database connection to {host}:{port} failed: {message}") from e

        try:
            connection.set_session(readonly=True, autocommit=True)
        except psycopg2.Error:
            connection.close()
            raise
        logger.info("Database connection established", host=host, port=port)
        return connection

    def _teardown(self, session: LiveSession) -> None:
        if session.connection is not None:
            try:
                if session.is_open:
                    session.connection.close()
            except Exception as e:
                logger.warning("Failed to close database connection", error=str(e))
            session.connection = None

        if session.forwarder is not None:
            try:
                session.forwarder.stop()
            except Exception as e:
                logger.warning("Failed to stop port forward", error=str(e))
            session.forwarder = None

        if session.ssh_client is not None:
            try:
                session.ssh_client.close()
            except Exception as e:
                logger.warning("Failed to close SSH connection", error=str(e))
            session.ssh_client = None

        session.local_port = None
        logger.debug("Session torn down")
