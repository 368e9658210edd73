"""Service layer used by the CLI and the public API.

Reaching a device service is two explicit steps: :meth:`DeviceService.discover`
asks lockdown for the port and TLS requirement, then :meth:`DeviceService.dial`
opens that port. Discovery can therefore be exercised without a live dial.
"""

from __future__ import annotations

import logging

from idevctl.core.channel import PlistConnection
from idevctl.core.errors import NotConnectedError
from idevctl.core.framing import PlistCodec
from idevctl.core.installation import INSTALLATION_PROXY_SERVICE_NAME, InstallationProxyClient
from idevctl.core.lockdown import LockdownClient
from idevctl.core.model import ClientConfig, PairingRecord, ServiceDescriptor
from idevctl.core.profiles import PROFILE_SERVICE_NAME, ProfileClient
from idevctl.transports.base import Dialer

LOGGER = logging.getLogger(__name__)

_DEFAULT_SERVICES = {
    "installation_proxy": INSTALLATION_PROXY_SERVICE_NAME,
    "misagent": PROFILE_SERVICE_NAME,
}


class DeviceService:
    def __init__(
        self,
        dialer: Dialer,
        *,
        config: ClientConfig | None = None,
        pairing_record: PairingRecord | None = None,
    ) -> None:
        self.dialer = dialer
        self.config = config or ClientConfig()
        self.pairing_record = pairing_record
        self._lockdown: LockdownClient | None = None
        self._session_started = False

    def _connection(self, port: int) -> PlistConnection:
        stream = self.dialer.dial(port)
        return PlistConnection(
            stream,
            label=self.config.label,
            codec=PlistCodec(self.config.plist_format),
        )

    def service_identifier(self, name: str) -> str:
        return self.config.services.get(name) or _DEFAULT_SERVICES.get(name, name)

    def lockdown(self) -> LockdownClient:
        if self._lockdown is None or self._lockdown.connection is None:
            self._lockdown = LockdownClient(self._connection(self.config.lockdown_port))
            self._session_started = False
        return self._lockdown

    def start_session(self) -> None:
        if self._session_started:
            return
        if self.pairing_record is None:
            raise NotConnectedError("A pairing record is required to start a lockdown session")
        self.lockdown().start_session(self.pairing_record)
        self._session_started = True

    def discover(self, name: str) -> ServiceDescriptor:
        if self.pairing_record is not None:
            self.start_session()
        descriptor = self.lockdown().discover(self.service_identifier(name))
        LOGGER.debug(
            "Service %s on port %d (tls=%s)",
            descriptor.name,
            descriptor.port,
            descriptor.requires_tls,
        )
        return descriptor

    def dial(self, descriptor: ServiceDescriptor) -> PlistConnection:
        connection = self._connection(descriptor.port)
        if descriptor.requires_tls:
            if self.pairing_record is None:
                connection.close()
                raise NotConnectedError(f"Service {descriptor.name} requires TLS but no pairing record is loaded")
            try:
                connection.start_tls(self.pairing_record)
            except Exception:
                connection.close()
                raise
        return connection

    def installation_proxy(self) -> InstallationProxyClient:
        descriptor = self.discover("installation_proxy")
        return InstallationProxyClient(self.dial(descriptor))

    def profiles(self) -> ProfileClient:
        descriptor = self.discover("misagent")
        return ProfileClient(self.dial(descriptor))

    def close(self) -> None:
        if self._lockdown is not None:
            self._lockdown.close()
            self._lockdown = None
        self._session_started = False
