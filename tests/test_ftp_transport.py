"""Tests for the FTPS transport: session setup, error mapping, cleanup."""

import ftplib
import socket
import ssl
from unittest.mock import MagicMock

import pytest

from station_telemetry.pipeline.ftp_transport import (
    AuthFailedError,
    ConnectFailedError,
    FtpsTransport,
    RemoteFileNotFoundError,
    TransportError,
    build_remote_path,
)


def _transport(factory: MagicMock) -> FtpsTransport:
    return FtpsTransport(
        host="ftps.example.org",
        port=990,
        user="loader",
        password="secret",
        base_path="files/network/data/latest/",
        timeout=5.0,
        ftp_factory=factory,
    )


def _serving(lines: list[str]) -> MagicMock:
    """An FTP_TLS factory whose RETR feeds ``lines`` to the callback."""
    factory = MagicMock()

    def retrlines(cmd, callback):
        for line in lines:
            callback(line)
        return "226 Transfer complete"

    factory.return_value.retrlines.side_effect = retrlines
    return factory


class TestBuildRemotePath:
    @pytest.mark.parametrize(
        "base, name, expected",
        [
            ("files/latest/", "st3.dat", "files/latest/st3.dat"),
            ("files/latest", "st3.dat", "files/latest/st3.dat"),
            ("files/latest/", "/st3.dat", "files/latest/st3.dat"),
            ("files/latest//", "//st3.dat", "files/latest/st3.dat"),
        ],
    )
    def test_single_separator(self, base, name, expected):
        assert build_remote_path(base, name) == expected


class TestFetchRaw:
    def test_returns_lines(self):
        factory = _serving(["a,b", "1,2"])

        lines = _transport(factory).fetch_raw("st3.dat")

        assert lines == ["a,b", "1,2"]

    def test_session_setup_sequence(self):
        factory = _serving([])

        _transport(factory).fetch_raw("st3.dat")

        ftp = factory.return_value
        factory.assert_called_once_with(timeout=5.0)
        ftp.connect.assert_called_once_with("ftps.example.org", 990, timeout=5.0)
        ftp.auth.assert_called_once()
        ftp.login.assert_called_once_with("loader", "secret")
        ftp.prot_p.assert_called_once()
        ftp.set_pasv.assert_called_once_with(True)
        assert ftp.retrlines.call_args.args[0] == "RETR files/network/data/latest/st3.dat"
        ftp.close.assert_called_once()

    def test_connect_failure(self):
        factory = MagicMock()
        factory.return_value.connect.side_effect = socket.timeout("timed out")

        with pytest.raises(ConnectFailedError):
            _transport(factory).fetch_raw("st3.dat")

        factory.return_value.login.assert_not_called()
        factory.return_value.close.assert_called_once()

    def test_connection_refused(self):
        factory = MagicMock()
        factory.return_value.connect.side_effect = ConnectionRefusedError()

        with pytest.raises(ConnectFailedError):
            _transport(factory).fetch_raw("st3.dat")

    def test_auth_failure(self):
        factory = MagicMock()
        factory.return_value.login.side_effect = ftplib.error_perm("530 Login incorrect.")

        with pytest.raises(AuthFailedError):
            _transport(factory).fetch_raw("st3.dat")

        factory.return_value.retrlines.assert_not_called()
        factory.return_value.close.assert_called_once()

    def test_auth_tls_rejected_is_connect_error(self):
        factory = MagicMock()
        factory.return_value.auth.side_effect = ftplib.error_perm("534 Policy requires SSL.")

        with pytest.raises(ConnectFailedError):
            _transport(factory).fetch_raw("st3.dat")

        factory.return_value.login.assert_not_called()
        factory.return_value.close.assert_called_once()

    def test_tls_handshake_failure_is_connect_error(self):
        factory = MagicMock()
        factory.return_value.auth.side_effect = ssl.SSLError("handshake failure")

        with pytest.raises(ConnectFailedError):
            _transport(factory).fetch_raw("st3.dat")

    def test_tls_setup_failure_is_connect_error(self):
        factory = MagicMock()
        factory.return_value.prot_p.side_effect = ftplib.error_temp("421 Service not available")

        with pytest.raises(ConnectFailedError):
            _transport(factory).fetch_raw("st3.dat")

    def test_missing_file(self):
        factory = MagicMock()
        factory.return_value.retrlines.side_effect = ftplib.error_perm(
            "550 st3.dat: No such file or directory"
        )

        with pytest.raises(RemoteFileNotFoundError):
            _transport(factory).fetch_raw("st3.dat")

        factory.return_value.close.assert_called_once()

    def test_other_permanent_error(self):
        factory = MagicMock()
        factory.return_value.retrlines.side_effect = ftplib.error_perm("553 Not allowed")

        with pytest.raises(TransportError) as exc_info:
            _transport(factory).fetch_raw("st3.dat")

        assert not isinstance(exc_info.value, RemoteFileNotFoundError)

    def test_dropped_transfer(self):
        factory = MagicMock()
        factory.return_value.retrlines.side_effect = EOFError()

        with pytest.raises(TransportError):
            _transport(factory).fetch_raw("st3.dat")

        factory.return_value.close.assert_called_once()

    def test_session_decodes_as_latin1(self):
        factory = _serving([])
        seen = {}

        def connect(*args, **kwargs):
            seen["encoding"] = factory.return_value.encoding

        factory.return_value.connect.side_effect = connect

        _transport(factory).fetch_raw("st3.dat")

        assert seen["encoding"] == "latin-1"

    def test_non_utf8_byte_in_file(self):
        factory = MagicMock()
        raw = [b"TIMESTAMP,AirTC_Avg", b"Deg \xb0C,Avg", b"2024-05-01 10:00:00,12.5"]

        def retrlines(cmd, callback):
            ftp = factory.return_value
            for line in raw:
                callback(line.decode(ftp.encoding))
            return "226 Transfer complete"

        factory.return_value.retrlines.side_effect = retrlines

        lines = _transport(factory).fetch_raw("st3.dat")

        assert lines[1] == "Deg \u00b0C,Avg"
        assert lines[2] == "2024-05-01 10:00:00,12.5"

    def test_undecodable_download_is_transport_error(self):
        factory = MagicMock()
        factory.return_value.retrlines.side_effect = UnicodeDecodeError(
            "utf-8", b"\xb0", 0, 1, "invalid start byte"
        )

        with pytest.raises(TransportError):
            _transport(factory).fetch_raw("st3.dat")

        factory.return_value.close.assert_called_once()

    def test_fresh_session_per_fetch(self):
        factory = _serving(["a"])
        transport = _transport(factory)

        transport.fetch_raw("one.dat")
        transport.fetch_raw("two.dat")

        assert factory.call_count == 2
        assert factory.return_value.close.call_count == 2

    @pytest.mark.asyncio
    async def test_async_wrapper(self):
        factory = _serving(["x,y", "1,2"])

        lines = await _transport(factory).fetch_raw_async("st3.dat")

        assert lines == ["x,y", "1,2"]
