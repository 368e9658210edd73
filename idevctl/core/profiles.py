"""Provisioning profile management over both device transports.

The lockdown-started service reports success as ``Status == 1``. The remote
shim reached through RSD reports success as ``Status == 0``. The two device
services disagree and each client keeps its own success value.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from idevctl.core.errors import ProfileOperationError, ProtocolViolationError
from idevctl.core.framing import FramedChannel, PlistCodec, rsd_checkin
from idevctl.core.values import Dictionary
from idevctl.transports.base import ByteStream, MessageConnection

LOGGER = logging.getLogger(__name__)

PROFILE_SERVICE_NAME = "com.apple.misagent"
REMOTE_PROFILE_SERVICE_NAME = "com.apple.misagent.shim.remote"
REMOTE_CHECKIN_LABEL = "misagent-rsd"
PROFILE_TYPE = "Provisioning"


class _ProfileRequests(ABC):
    success_status: int

    @abstractmethod
    def _exchange(self, request: Dictionary) -> Dictionary:
        """Send one request and return its reply."""

    def _check_status(self, response: Dictionary, message_type: str) -> None:
        status = response.get("Status")
        if isinstance(status, bool) or not isinstance(status, int):
            LOGGER.warning("Did not get integer status response for %s", message_type)
            raise ProtocolViolationError(f"{message_type} response is missing an integer 'Status'")
        if status != self.success_status:
            raise ProfileOperationError(status)

    def install(self, profile: bytes) -> None:
        response = self._exchange(
            {"MessageType": "Install", "Profile": bytes(profile), "ProfileType": PROFILE_TYPE}
        )
        self._check_status(response, "Install")

    def remove(self, profile_id: str) -> None:
        response = self._exchange(
            {"MessageType": "Remove", "ProfileID": profile_id, "ProfileType": PROFILE_TYPE}
        )
        self._check_status(response, "Remove")

    def copy_all(self) -> list[bytes]:
        response = self._exchange({"MessageType": "CopyAll", "ProfileType": PROFILE_TYPE})
        payload = response.get("Payload")
        if not isinstance(payload, list):
            LOGGER.warning("Did not get a payload of provisioning profiles as an array")
            raise ProtocolViolationError("CopyAll response is missing a 'Payload' array")
        profiles: list[bytes] = []
        for entry in payload:
            if not isinstance(entry, (bytes, bytearray)):
                LOGGER.warning("CopyAll did not return data entries")
                raise ProtocolViolationError("CopyAll payload entries must be data")
            profiles.append(bytes(entry))
        return profiles


class ProfileClient(_ProfileRequests):
    """Profile service started through lockdown; messages are framed by the connection."""

    success_status = 1

    def __init__(self, connection: MessageConnection) -> None:
        self.connection = connection

    def _exchange(self, request: Dictionary) -> Dictionary:
        self.connection.send_plist(request)
        return self.connection.read_plist()

    def close(self) -> None:
        self.connection.close()


class RemoteProfileClient(_ProfileRequests):
    """Profile shim reached over RSD, using explicit length-prefixed frames."""

    success_status = 0

    def __init__(self, stream: ByteStream) -> None:
        self.stream = stream
        self.channel = FramedChannel(stream)

    @classmethod
    def checkin(cls, stream: ByteStream, label: str = REMOTE_CHECKIN_LABEL) -> RemoteProfileClient:
        client = cls(stream)
        rsd_checkin(client.channel, label)
        return client

    def _exchange(self, request: Dictionary) -> Dictionary:
        LOGGER.debug("Sending plist request: %r", request)
        self.channel.send_plist(request, PlistCodec.XML)
        response = self.channel.receive_plist()
        LOGGER.debug("Received plist: %r", response)
        return response

    def close(self) -> None:
        self.stream.close()
