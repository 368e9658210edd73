"""Installation proxy client: application lookup, install and removal."""

from __future__ import annotations

import logging
from typing import Any

from idevctl.core.errors import ProtocolViolationError
from idevctl.core.operation import ProgressSink, collect_browse, watch_completion
from idevctl.core.values import Dictionary
from idevctl.transports.base import MessageConnection

LOGGER = logging.getLogger(__name__)

INSTALLATION_PROXY_SERVICE_NAME = "com.apple.mobile.installation_proxy"


class InstallationProxyClient:
    def __init__(self, connection: MessageConnection) -> None:
        self.connection = connection

    def _send(self, command: str, options: Dictionary | None, **fields: Any) -> None:
        request: Dictionary = {"Command": command, "ClientOptions": options or {}}
        request.update(fields)
        self.connection.send_plist(request)

    def lookup(
        self,
        application_type: str | None = None,
        bundle_identifiers: list[str] | None = None,
    ) -> dict[str, Any]:
        options: Dictionary = {}
        if bundle_identifiers is not None:
            options["BundleIDs"] = list(bundle_identifiers)
        options["ApplicationType"] = application_type or "Any"
        self._send("Lookup", options)

        response = self.connection.read_plist()
        result = response.get("LookupResult")
        if not isinstance(result, dict):
            LOGGER.warning("Lookup response did not contain a LookupResult dictionary")
            raise ProtocolViolationError("Lookup response is missing a 'LookupResult' dictionary")
        return result

    def install(
        self,
        package_path: str,
        options: Dictionary | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self._send("Install", options, PackagePath=package_path)
        watch_completion(self.connection, progress)

    def upgrade(
        self,
        package_path: str,
        options: Dictionary | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self._send("Upgrade", options, PackagePath=package_path)
        watch_completion(self.connection, progress)

    def uninstall(
        self,
        bundle_id: str,
        options: Dictionary | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self._send("Uninstall", options, ApplicationIdentifier=bundle_id)
        watch_completion(self.connection, progress)

    def check_capabilities_match(
        self,
        capabilities: list[Any],
        options: Dictionary | None = None,
    ) -> bool:
        self._send("CheckCapabilitiesMatch", options, Capabilities=list(capabilities))
        response = self.connection.read_plist()
        result = response.get("LookupResult")
        if not isinstance(result, bool):
            LOGGER.warning("CheckCapabilitiesMatch response did not contain a boolean LookupResult")
            raise ProtocolViolationError("CheckCapabilitiesMatch response is missing a boolean 'LookupResult'")
        return result

    def browse(self, options: Dictionary | None = None) -> list[Any]:
        self._send("Browse", options)
        return collect_browse(self.connection)

    def close(self) -> None:
        self.connection.close()
