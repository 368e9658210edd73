"""Lockdown session and service discovery client."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from idevctl.core.channel import PlistConnection
from idevctl.core.errors import NotConnectedError, ProtocolViolationError
from idevctl.core.model import PairingRecord, ServiceDescriptor
from idevctl.core.pairing import DEFAULT_RETRY_INTERVAL_S, CertificateAuthority, pair
from idevctl.core.values import Dictionary

LOGGER = logging.getLogger(__name__)

LOCKDOWN_SERVICE_NAME = "com.apple.mobile.lockdown"
LOCKDOWN_PORT = 62078


class LockdownClient:
    """Device configuration, session and service discovery over lockdown.

    A TLS-requiring service returned by :meth:`start_service` may only be
    dialed after :meth:`start_session` succeeded on this client. That ordering
    is the caller's responsibility.
    """

    def __init__(self, connection: PlistConnection | None) -> None:
        self.connection = connection

    @property
    def label(self) -> str:
        return self._connection().label

    def _connection(self) -> PlistConnection:
        if self.connection is None or not self.connection.is_connected:
            raise NotConnectedError("Lockdown client has no established connection")
        return self.connection

    def request(self, message: Dictionary) -> Dictionary:
        connection = self._connection()
        connection.send_plist(message)
        return connection.read_plist()

    def get_value(self, key: str, domain: str | None = None) -> Any:
        request: Dictionary = {"Label": self.label, "Request": "GetValue", "Key": key}
        if domain is not None:
            request["Domain"] = domain
        response = self.request(request)
        if "Value" not in response:
            LOGGER.warning("GetValue %s response did not contain a Value", key)
            raise ProtocolViolationError(f"GetValue response for '{key}' is missing 'Value'")
        return response["Value"]

    def get_all_values(self, domain: str | None = None) -> Dictionary:
        request: Dictionary = {"Label": self.label, "Request": "GetValue"}
        if domain is not None:
            request["Domain"] = domain
        response = self.request(request)
        value = response.get("Value")
        if not isinstance(value, dict):
            LOGGER.warning("GetValue response did not contain a Value dictionary")
            raise ProtocolViolationError("GetValue response is missing a 'Value' dictionary")
        return value

    def set_value(self, key: str, value: Any, domain: str | None = None) -> None:
        request: Dictionary = {
            "Label": self.label,
            "Request": "SetValue",
            "Key": key,
            "Value": value,
        }
        if domain is not None:
            request["Domain"] = domain
        self.request(request)

    def start_session(self, pairing_record: PairingRecord) -> None:
        connection = self._connection()
        response = self.request(
            {
                "Label": self.label,
                "Request": "StartSession",
                "HostID": pairing_record.host_id,
                "SystemBUID": pairing_record.system_buid,
            }
        )
        if response.get("EnableSessionSSL") is not True:
            LOGGER.warning("StartSession did not enable session SSL: %r", response.get("EnableSessionSSL"))
            raise ProtocolViolationError("StartSession response did not set EnableSessionSSL to true")
        connection.start_tls(pairing_record)
        LOGGER.debug("Lockdown session started for host %s", pairing_record.host_id)

    def start_service(self, identifier: str) -> tuple[int, bool]:
        response = self.request({"Request": "StartService", "Service": identifier})

        ssl = response.get("EnableServiceSSL")
        if not isinstance(ssl, bool):
            # Over USB the device omits the flag.
            ssl = False

        port = response.get("Port")
        if isinstance(port, bool) or not isinstance(port, int):
            LOGGER.error("Response didn't contain an integer port")
            raise ProtocolViolationError(f"StartService for '{identifier}' did not return an integer Port")
        if not 0 <= port <= 0xFFFF:
            LOGGER.error("Port %d is out of range", port)
            raise ProtocolViolationError(f"StartService for '{identifier}' returned out-of-range port {port}")
        return port, ssl

    def discover(self, identifier: str) -> ServiceDescriptor:
        port, ssl = self.start_service(identifier)
        return ServiceDescriptor(name=identifier, port=port, requires_tls=ssl)

    def pair(
        self,
        host_id: str,
        system_buid: str,
        authority: CertificateAuthority,
        *,
        retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> PairingRecord:
        return pair(
            self,
            host_id,
            system_buid,
            authority,
            retry_interval_s=retry_interval_s,
            sleep=sleep,
        )

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None
