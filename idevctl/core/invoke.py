"""CoreDevice feature invocation over an XPC connection."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from idevctl.core.errors import ProtocolViolationError
from idevctl.core.values import Dictionary, XpcInt64, XpcUInt64, from_xpc, to_xpc
from idevctl.transports.base import XpcConnection

LOGGER = logging.getLogger(__name__)

CORE_DEVICE_VERSION = "443.18"
FEATURE_PREFIX = "com.apple.coredevice.feature."
_UINT64_MAX = 2**64 - 1

IdSource = Callable[[], str]


def random_identifier() -> str:
    return str(uuid.uuid4()).upper()


def version_structure(version: str) -> Dictionary:
    """Describe a dotted version string the way CoreDevice expects it.

    Components that are not unsigned integers are dropped (a leading ``+`` is
    allowed), and the reported count covers only the parsed components.
    """
    components: list[XpcUInt64] = []
    for part in version.split("."):
        digits = part[1:] if part.startswith("+") else part
        if not (digits.isascii() and digits.isdigit()):
            continue
        number = int(digits)
        if number <= _UINT64_MAX:
            components.append(XpcUInt64(number))
    return {
        "originalComponentsCount": XpcInt64(len(components)),
        "components": components,
        "stringValue": version,
    }


class CoreDeviceClient:
    """Sends feature invocations and returns their unwrapped output.

    The device identifier is generated once per client; every invocation gets
    a fresh invocation identifier.
    """

    def __init__(
        self,
        connection: XpcConnection,
        *,
        core_version: str = CORE_DEVICE_VERSION,
        id_source: IdSource = random_identifier,
    ) -> None:
        self.connection = connection
        self.core_version = core_version
        self._next_id = id_source
        self.device_identifier = id_source()

    @classmethod
    def connect(cls, connection: XpcConnection, **kwargs: Any) -> CoreDeviceClient:
        connection.do_handshake()
        return cls(connection, **kwargs)

    def build_envelope(self, feature: str, input: Dictionary | None = None) -> Dictionary:
        return {
            "CoreDevice.CoreDeviceDDIProtocolVersion": XpcInt64(0),
            "CoreDevice.action": {},
            "CoreDevice.coreDeviceVersion": version_structure(self.core_version),
            "CoreDevice.deviceIdentifier": self.device_identifier,
            "CoreDevice.featureIdentifier": feature,
            "CoreDevice.input": to_xpc(input or {}),
            "CoreDevice.invocationIdentifier": self._next_id(),
        }

    def invoke(self, feature: str, input: Dictionary | None = None) -> Any:
        envelope = self.build_envelope(feature, input)
        LOGGER.debug(
            "Invoking %s (invocation %s)",
            feature,
            envelope["CoreDevice.invocationIdentifier"],
        )
        self.connection.send_object(envelope, True)
        reply = self.connection.recv()
        if not isinstance(reply, dict):
            LOGGER.warning("XPC response was not a dictionary")
            raise ProtocolViolationError("CoreDevice reply must be a dictionary")
        if "CoreDevice.output" not in reply:
            LOGGER.warning("XPC response did not have an output")
            raise ProtocolViolationError("CoreDevice reply is missing 'CoreDevice.output'")
        return from_xpc(reply["CoreDevice.output"])
