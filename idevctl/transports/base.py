"""Transport interfaces."""

from __future__ import annotations

from typing import Any, Protocol

from idevctl.core.model import PairingRecord


class ByteStream(Protocol):
    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes. An empty result means EOF."""

    def write(self, data: bytes) -> None:
        """Write all of ``data``."""

    def flush(self) -> None:
        """Flush buffered writes."""

    def start_tls(self, pairing_record: PairingRecord) -> None:
        """Upgrade the stream in place to mutual TLS."""

    def close(self) -> None:
        """Close the stream."""


class Dialer(Protocol):
    def dial(self, port: int) -> ByteStream:
        """Open a byte stream to ``port`` on the device."""


class XpcConnection(Protocol):
    def do_handshake(self) -> None:
        """Run the XPC channel handshake."""

    def send_object(self, message: dict[str, Any], expect_reply: bool = True) -> None:
        """Encode and send a structured object."""

    def recv(self) -> Any:
        """Receive and decode the next structured object."""


class MessageConnection(Protocol):
    def send_plist(self, message: Any) -> None:
        """Send one request dictionary."""

    def read_plist(self) -> dict[str, Any]:
        """Receive the next reply dictionary."""

    def close(self) -> None:
        """Close the connection."""
