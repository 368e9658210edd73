"""Plist message connection used by lockdown-class services."""

from __future__ import annotations

import logging
from typing import Any

from idevctl.core.errors import DeviceError, NotConnectedError, PendingError
from idevctl.core.framing import FramedChannel, PlistCodec
from idevctl.core.model import PairingRecord
from idevctl.core.values import Dictionary
from idevctl.transports.base import ByteStream

LOGGER = logging.getLogger(__name__)

PAIRING_PENDING_CODE = "PairingDialogResponsePending"


def classify_device_error(message: Dictionary) -> None:
    """Raise the error a reply's ``Error`` field describes, if it has one."""
    code = message.get("Error")
    if not isinstance(code, str):
        return
    description = message.get("ErrorDescription")
    if not isinstance(description, str):
        description = None
    if code == PAIRING_PENDING_CODE:
        raise PendingError(code, description)
    LOGGER.debug("Device reported error %s (%s)", code, description)
    raise DeviceError(code, description)


class PlistConnection:
    """A device connection that carries one plist dictionary per message.

    The connection owns its stream exclusively; one request's full response
    must be consumed before the next request is written.
    """

    def __init__(
        self,
        stream: ByteStream,
        *,
        label: str = "idevctl",
        codec: PlistCodec = PlistCodec.XML,
    ) -> None:
        self._stream: ByteStream | None = stream
        self._channel = FramedChannel(stream)
        self.label = label
        self.codec = codec

    @property
    def is_connected(self) -> bool:
        return self._stream is not None

    def _require_stream(self) -> ByteStream:
        if self._stream is None:
            raise NotConnectedError("No established connection to the device")
        return self._stream

    def send_plist(self, message: Any) -> None:
        self._require_stream()
        LOGGER.debug("Sending plist: %r", message)
        self._channel.send_plist(message, self.codec)

    def read_plist(self) -> Dictionary:
        self._require_stream()
        message = self._channel.receive_plist()
        LOGGER.debug("Received plist: %r", message)
        classify_device_error(message)
        return message

    def start_tls(self, pairing_record: PairingRecord) -> None:
        self._require_stream().start_tls(pairing_record)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
