"""TCP transport implementation using Python sockets."""

from __future__ import annotations

import logging
import socket
import ssl
import tempfile
from pathlib import Path

from idevctl.core.errors import (
    NotConnectedError,
    TransportConnectError,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
)
from idevctl.core.model import PairingRecord

LOGGER = logging.getLogger(__name__)


def _client_context(pairing_record: PairingRecord) -> ssl.SSLContext:
    if pairing_record.host_private_key is None:
        raise TransportConnectError("Pairing record has no HostPrivateKey for the TLS identity")
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    # ssl only loads identities from files.
    with tempfile.TemporaryDirectory(prefix="idevctl-") as tmp:
        cert_path = Path(tmp) / "host.pem"
        key_path = Path(tmp) / "host.key"
        cert_path.write_bytes(pairing_record.host_certificate)
        key_path.write_bytes(pairing_record.host_private_key)
        try:
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        except (ssl.SSLError, OSError) as exc:
            raise TransportConnectError(f"Could not load TLS identity from pairing record: {exc}") from exc
    return context


class TcpStream:
    def __init__(self, sock: socket.socket) -> None:
        self._socket: socket.socket | None = sock

    def _sock(self) -> socket.socket:
        if self._socket is None:
            raise NotConnectedError("TCP stream is closed")
        return self._socket

    def read(self, size: int) -> bytes:
        try:
            return self._sock().recv(size)
        except TimeoutError as exc:
            raise TransportTimeoutError("TCP receive timed out") from exc
        except OSError as exc:
            raise TransportReceiveError(f"TCP receive failed: {exc}") from exc

    def write(self, data: bytes) -> None:
        try:
            self._sock().sendall(data)
        except TimeoutError as exc:
            raise TransportTimeoutError("TCP send timed out") from exc
        except OSError as exc:
            raise TransportSendError(f"TCP send failed: {exc}") from exc

    def flush(self) -> None:
        self._sock()

    def start_tls(self, pairing_record: PairingRecord) -> None:
        context = _client_context(pairing_record)
        try:
            self._socket = context.wrap_socket(self._sock())
        except TimeoutError as exc:
            raise TransportTimeoutError("TLS handshake timed out") from exc
        except (ssl.SSLError, OSError) as exc:
            raise TransportConnectError(f"TLS handshake failed: {exc}") from exc
        LOGGER.debug("Upgraded stream to TLS (%s)", self._socket.version())

    def close(self) -> None:
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()


class TcpDialer:
    def __init__(self, host: str, *, timeout_s: float = 5.0) -> None:
        self.host = host
        self.timeout_s = timeout_s

    def dial(self, port: int) -> TcpStream:
        try:
            sock = socket.create_connection((self.host, port), timeout=self.timeout_s)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"TCP connect timed out for {self.host}:{port}") from exc
        except OSError as exc:
            raise TransportConnectError(f"TCP connect failed for {self.host}:{port}: {exc}") from exc
        LOGGER.debug("Connected to %s:%d", self.host, port)
        return TcpStream(sock)
