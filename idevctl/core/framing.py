"""Length-prefixed message framing and plist body codecs.

Every frame is a 4-byte big-endian unsigned length followed by that many
bytes of body. The declared length is trusted; no upper bound is enforced.
"""

from __future__ import annotations

import logging
import plistlib
import struct
from enum import Enum
from typing import Any
from xml.parsers.expat import ExpatError

from idevctl.core.errors import EncodingError, ProtocolViolationError, TransportReceiveError, TransportSendError
from idevctl.core.values import Dictionary, from_xpc
from idevctl.transports.base import ByteStream

LOGGER = logging.getLogger(__name__)

_LENGTH = struct.Struct(">I")

RSD_CHECKIN_REQUEST = "RSDCheckin"
RSD_START_SERVICE = "StartService"


class PlistCodec(Enum):
    XML = "xml"
    BINARY = "binary"

    def encode(self, value: Any) -> bytes:
        fmt = plistlib.FMT_XML if self is PlistCodec.XML else plistlib.FMT_BINARY
        try:
            return plistlib.dumps(from_xpc(value), fmt=fmt, sort_keys=False)
        except (TypeError, ValueError, OverflowError) as exc:
            raise EncodingError(f"Could not serialize {self.value} plist: {exc}") from exc

    @staticmethod
    def decode(body: bytes) -> Any:
        """Decode a plist body, detecting XML or binary format."""
        try:
            return plistlib.loads(body)
        except (
            plistlib.InvalidFileException,
            ExpatError,
            ValueError,
            TypeError,
            AttributeError,
            IndexError,
            KeyError,
            OverflowError,
            struct.error,
        ) as exc:
            raise EncodingError(f"Malformed plist body ({len(body)} bytes): {exc}") from exc

    @staticmethod
    def decode_dict(body: bytes) -> Dictionary:
        value = PlistCodec.decode(body)
        if not isinstance(value, dict):
            LOGGER.warning("Plist response was not a dictionary")
            raise ProtocolViolationError(
                f"Expected a dictionary response, got {type(value).__name__}"
            )
        return value


class FramedChannel:
    """Request/response primitive over a byte stream without message boundaries."""

    def __init__(self, stream: ByteStream) -> None:
        self.stream = stream

    def send(self, body: bytes) -> None:
        if len(body) > 0xFFFFFFFF:
            raise EncodingError(f"Frame body of {len(body)} bytes does not fit a 32-bit length")
        try:
            self.stream.write(_LENGTH.pack(len(body)) + body)
            self.stream.flush()
        except OSError as exc:
            raise TransportSendError(f"Frame send failed: {exc}") from exc
        LOGGER.debug("Sent frame with %d byte body", len(body))

    def receive(self) -> bytes:
        (length,) = _LENGTH.unpack(self._read_exact(_LENGTH.size))
        LOGGER.debug("Receiving frame with %d byte body", length)
        return self._read_exact(length)

    def send_plist(self, value: Any, codec: PlistCodec = PlistCodec.XML) -> None:
        self.send(codec.encode(value))

    def receive_plist(self) -> Dictionary:
        return PlistCodec.decode_dict(self.receive())

    def _read_exact(self, size: int) -> bytes:
        chunks: list[bytes] = []
        remaining = size
        while remaining > 0:
            try:
                chunk = self.stream.read(remaining)
            except OSError as exc:
                raise TransportReceiveError(f"Frame receive failed: {exc}") from exc
            if not chunk:
                raise TransportReceiveError(
                    f"Connection closed after {size - remaining} of {size} bytes"
                )
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)


def rsd_checkin(channel: FramedChannel, label: str) -> None:
    """Run the RSD service checkin on a freshly opened framed channel."""
    channel.send_plist(
        {"Label": label, "ProtocolVersion": "2", "Request": RSD_CHECKIN_REQUEST},
        PlistCodec.BINARY,
    )
    for expected in (RSD_CHECKIN_REQUEST, RSD_START_SERVICE):
        reply = channel.receive_plist()
        if reply.get("Request") != expected:
            LOGGER.warning("RSD checkin expected %s, got %r", expected, reply.get("Request"))
            raise ProtocolViolationError(f"RSD checkin expected Request '{expected}'")
    LOGGER.debug("RSD checkin complete for %s", label)
