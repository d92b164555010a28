"""Retrieve raw station data files from the network's FTPS file store.

Station loggers push their tables to an explicit-TLS FTP server under a shared
base directory (``files/network/data/latest/`` by default).  Each fetch opens
its own session: connect (bounded timeout), negotiate TLS, login, protect the
data channel, switch to passive mode, then pull the file in ASCII mode line by
line, decoded as latin-1.
Sessions are never pooled or shared between concurrent fetches.
"""

from __future__ import annotations

import asyncio
import ftplib
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from station_telemetry.core.config import settings
from station_telemetry.core.errors import TelemetryError

logger = logging.getLogger(__name__)


class TransportError(TelemetryError):
    """Raised when a remote file cannot be retrieved."""

    code = "FILE_STORE_ERROR"


class ConnectFailedError(TransportError):
    """Server unreachable, refused, or connect timed out."""


class AuthFailedError(TransportError):
    """Server rejected the configured credentials."""


class RemoteFileNotFoundError(TransportError):
    """The requested file does not exist on the server."""

    code = "REMOTE_FILE_NOT_FOUND"


def build_remote_path(base_path: str, file_name: str) -> str:
    """Join the configured base directory and a station's file pointer."""
    return base_path.rstrip("/") + "/" + file_name.lstrip("/")


class FtpsTransport:
    """Fetch files from the FTPS store, one fresh session per call."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        base_path: str | None = None,
        timeout: float | None = None,
        ftp_factory: Callable[..., ftplib.FTP_TLS] = ftplib.FTP_TLS,
    ) -> None:
        self.host = host or settings.ftps_server
        self.port = port or settings.ftps_port
        self.user = user if user is not None else settings.ftps_user
        self.password = password if password is not None else settings.ftps_password
        self.base_path = base_path if base_path is not None else settings.ftps_base_path
        self.timeout = timeout or settings.ftps_timeout_seconds
        self._ftp_factory = ftp_factory

    @contextmanager
    def _session(self) -> Iterator[ftplib.FTP_TLS]:
        ftp = self._ftp_factory(timeout=self.timeout)
        # Tables are ASCII but units banners may carry a raw degree sign.
        ftp.encoding = "latin-1"
        try:
            try:
                ftp.connect(self.host, self.port, timeout=self.timeout)
                ftp.auth()
            except (OSError, ftplib.Error) as exc:
                raise ConnectFailedError(
                    f"Failed to open FTPS session on {self.host}:{self.port}: {exc}"
                ) from exc

            try:
                ftp.login(self.user, self.password)
                ftp.prot_p()
            except ftplib.error_perm as exc:
                raise AuthFailedError(f"FTPS login failed for user {self.user}: {exc}") from exc
            except (OSError, ftplib.Error) as exc:
                raise ConnectFailedError(
                    f"FTPS session setup failed on {self.host}: {exc}"
                ) from exc

            ftp.set_pasv(True)
            yield ftp
        finally:
            ftp.close()

    def fetch_raw(self, file_name: str) -> list[str]:
        """Download ``file_name`` (relative to the base path) and return its lines.

        Raises:
            ConnectFailedError: connect, TLS negotiation or timeout failure.
            AuthFailedError: credentials rejected.
            RemoteFileNotFoundError: the server answered 550 for the file.
            TransportError: any other failure during the transfer.
        """
        remote_path = build_remote_path(self.base_path, file_name)
        lines: list[str] = []

        with self._session() as ftp:
            try:
                ftp.retrlines(f"RETR {remote_path}", lines.append)
            except ftplib.error_perm as exc:
                if str(exc).startswith("550"):
                    raise RemoteFileNotFoundError(
                        f"Remote file not found: {remote_path}"
                    ) from exc
                raise TransportError(f"Unable to download {remote_path}: {exc}") from exc
            except (OSError, ftplib.Error, EOFError, UnicodeError) as exc:
                raise TransportError(f"Unable to download {remote_path}: {exc}") from exc

        logger.info("Fetched %s (%d lines)", remote_path, len(lines))
        return lines

    async def fetch_raw_async(self, file_name: str) -> list[str]:
        """Run :meth:`fetch_raw` in a worker thread so the event loop stays free."""
        return await asyncio.to_thread(self.fetch_raw, file_name)
