from __future__ import annotations

import socket

import pytest

from fakes import make_record
from idevctl.core.errors import (
    NotConnectedError,
    TransportConnectError,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
)
from idevctl.transports import tcp


class FakeSocket:
    def __init__(self, recv_error: Exception | None = None, send_error: Exception | None = None) -> None:
        self.recv_error = recv_error
        self.send_error = send_error
        self.sent = bytearray()
        self.closed = False

    def recv(self, size: int) -> bytes:
        if self.recv_error is not None:
            raise self.recv_error
        return b"\x00" * size

    def sendall(self, data: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.extend(data)

    def close(self) -> None:
        self.closed = True


def test_dial_connects_with_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    fake = FakeSocket()

    def create_connection(address, timeout=None):
        calls.append((address, timeout))
        return fake

    monkeypatch.setattr(socket, "create_connection", create_connection)

    stream = tcp.TcpDialer("10.0.0.2", timeout_s=2.0).dial(62078)
    stream.write(b"abc")

    assert calls == [(("10.0.0.2", 62078), 2.0)]
    assert bytes(fake.sent) == b"abc"
    assert stream.read(3) == b"\x00\x00\x00"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConnectionRefusedError("refused"), TransportConnectError),
        (socket.timeout("timed out"), TransportTimeoutError),
    ],
)
def test_dial_errors_are_mapped(monkeypatch: pytest.MonkeyPatch, error: Exception, expected: type) -> None:
    def create_connection(address, timeout=None):
        raise error

    monkeypatch.setattr(socket, "create_connection", create_connection)

    with pytest.raises(expected):
        tcp.TcpDialer("10.0.0.2").dial(62078)


def test_stream_errors_are_mapped() -> None:
    with pytest.raises(TransportTimeoutError):
        tcp.TcpStream(FakeSocket(recv_error=TimeoutError())).read(4)
    with pytest.raises(TransportReceiveError):
        tcp.TcpStream(FakeSocket(recv_error=ConnectionResetError())).read(4)
    with pytest.raises(TransportSendError):
        tcp.TcpStream(FakeSocket(send_error=BrokenPipeError())).write(b"x")


def test_closed_stream_is_not_connected() -> None:
    fake = FakeSocket()
    stream = tcp.TcpStream(fake)
    stream.close()
    stream.close()

    assert fake.closed
    with pytest.raises(NotConnectedError):
        stream.read(1)


def test_start_tls_requires_host_private_key() -> None:
    stream = tcp.TcpStream(FakeSocket())
    with pytest.raises(TransportConnectError):
        stream.start_tls(make_record(host_private_key=None))


def test_start_tls_rejects_unusable_identity() -> None:
    stream = tcp.TcpStream(FakeSocket())
    with pytest.raises(TransportConnectError):
        stream.start_tls(make_record(host_certificate=b"not pem", host_private_key=b"not pem"))
