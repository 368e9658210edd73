"""Stable public API for building tooling on top of idevctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from contextlib import closing
from pathlib import Path
from typing import Any

from idevctl.core.app_service import AppServiceClient, ArchiveDecoder, icon_pixels
from idevctl.core.config import load_config
from idevctl.core.errors import (
    ConfigLoadError,
    ConfigValidationError,
    DeviceError,
    EncodingError,
    IdevctlError,
    InstallationFailedError,
    NotConnectedError,
    OperationFinishedError,
    PendingError,
    ProfileOperationError,
    ProtocolViolationError,
    ServiceFailureError,
    TransportConnectError,
    TransportError,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
)
from idevctl.core.invoke import CoreDeviceClient, IdSource, random_identifier
from idevctl.core.model import (
    AppRecord,
    ClientConfig,
    GeneratedCertificates,
    IconRecord,
    LaunchRecord,
    PairingRecord,
    ProcessToken,
    ServiceDescriptor,
    SignalRecord,
)
from idevctl.core.operation import ProgressSink
from idevctl.core.pairing import CertificateAuthority, load_pairing_record, save_pairing_record
from idevctl.core.profiles import RemoteProfileClient
from idevctl.core.service import DeviceService
from idevctl.transports.base import ByteStream, Dialer, XpcConnection
from idevctl.transports.tcp import TcpDialer

__all__ = [
    "IdevctlError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DeviceError",
    "EncodingError",
    "InstallationFailedError",
    "NotConnectedError",
    "OperationFinishedError",
    "PendingError",
    "ProfileOperationError",
    "ProtocolViolationError",
    "ServiceFailureError",
    "TransportError",
    "TransportConnectError",
    "TransportReceiveError",
    "TransportSendError",
    "TransportTimeoutError",
    "AppRecord",
    "ClientConfig",
    "GeneratedCertificates",
    "IconRecord",
    "LaunchRecord",
    "PairingRecord",
    "ProcessToken",
    "ServiceDescriptor",
    "SignalRecord",
    "CertificateAuthority",
    "ByteStream",
    "Dialer",
    "XpcConnection",
    "ProgressSink",
    "AppServiceClient",
    "RemoteProfileClient",
    "TcpDialer",
    "icon_pixels",
    "load_pairing_record",
    "save_pairing_record",
    "Client",
]


class Client:
    """Public client for interacting with a device.

    A `Client` owns one lockdown connection at a time and is not safe to
    share between concurrent callers. If a call is abandoned midway the
    client must be closed and a new one created.
    """

    def __init__(
        self,
        host: str | None = None,
        *,
        dialer: Dialer | None = None,
        config: ClientConfig | None = None,
        config_path: Path | None = None,
        pairing_record: PairingRecord | None = None,
    ) -> None:
        if config is None:
            loaded = load_config(config_path)
            config = loaded.config
            self.config_warnings = loaded.warnings
        else:
            self.config_warnings = ()
        if dialer is None:
            if host is None:
                raise NotConnectedError("Either a host or a dialer is required")
            dialer = TcpDialer(host, timeout_s=config.connect_timeout_s)
        self._service = DeviceService(dialer, config=config, pairing_record=pairing_record)

    @property
    def config(self) -> ClientConfig:
        return self._service.config

    def get_value(self, key: str, *, domain: str | None = None) -> Any:
        return self._service.lockdown().get_value(key, domain)

    def get_all_values(self, *, domain: str | None = None) -> dict[str, Any]:
        return self._service.lockdown().get_all_values(domain)

    def set_value(self, key: str, value: Any, *, domain: str | None = None) -> None:
        self._service.lockdown().set_value(key, value, domain)

    def pair(self, host_id: str, system_buid: str, authority: CertificateAuthority) -> PairingRecord:
        record = self._service.lockdown().pair(
            host_id,
            system_buid,
            authority,
            retry_interval_s=self.config.pairing_retry_interval_s,
        )
        self._service.pairing_record = record
        return record

    def discover(self, name: str) -> ServiceDescriptor:
        return self._service.discover(name)

    def list_installed_apps(self, *, options: dict[str, Any] | None = None) -> list[Any]:
        with closing(self._service.installation_proxy()) as proxy:
            return proxy.browse(options)

    def lookup_apps(
        self,
        *,
        application_type: str | None = None,
        bundle_identifiers: list[str] | None = None,
    ) -> dict[str, Any]:
        with closing(self._service.installation_proxy()) as proxy:
            return proxy.lookup(application_type, bundle_identifiers)

    def install_app(self, package_path: str, *, progress: ProgressSink | None = None) -> None:
        with closing(self._service.installation_proxy()) as proxy:
            proxy.install(package_path, progress=progress)

    def uninstall_app(self, bundle_id: str, *, progress: ProgressSink | None = None) -> None:
        with closing(self._service.installation_proxy()) as proxy:
            proxy.uninstall(bundle_id, progress=progress)

    def list_profiles(self) -> list[bytes]:
        with closing(self._service.profiles()) as profiles:
            return profiles.copy_all()

    def install_profile(self, profile: bytes) -> None:
        with closing(self._service.profiles()) as profiles:
            profiles.install(profile)

    def remove_profile(self, profile_id: str) -> None:
        with closing(self._service.profiles()) as profiles:
            profiles.remove(profile_id)

    def app_service(
        self,
        connection: XpcConnection,
        *,
        archive_decoder: ArchiveDecoder | None = None,
        id_source: IdSource = random_identifier,
    ) -> AppServiceClient:
        core = CoreDeviceClient.connect(
            connection,
            core_version=self.config.core_device_version,
            id_source=id_source,
        )
        return AppServiceClient(core, archive_decoder=archive_decoder)

    def remote_profiles(self, stream: ByteStream) -> RemoteProfileClient:
        return RemoteProfileClient.checkin(stream)

    def close(self) -> None:
        self._service.close()
