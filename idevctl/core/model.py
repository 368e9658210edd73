"""Core data models used across protocol clients, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class PairingRecord:
    host_id: str
    system_buid: str
    device_public_key: bytes
    device_certificate: bytes
    host_certificate: bytes
    root_certificate: bytes
    root_private_key: bytes
    wifi_mac_address: str
    host_private_key: bytes | None = None
    escrow_bag: bytes | None = None


@dataclass(frozen=True)
class GeneratedCertificates:
    device_certificate: bytes
    host_certificate: bytes
    private_key: bytes


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    port: int
    requires_tls: bool


@dataclass(frozen=True)
class ClientConfig:
    label: str = "idevctl"
    lockdown_port: int = 62078
    connect_timeout_s: float = 5.0
    plist_format: str = "xml"
    pairing_retry_interval_s: float = 1.0
    core_device_version: str = "443.18"
    services: dict[str, str] = field(default_factory=dict)


@dataclass
class OperationProgress:
    status_label: str = "Installing"
    percent_complete: int | None = None
    terminal: bool = False
    error: str | None = None


@dataclass(frozen=True)
class AppRecord:
    bundle_identifier: str
    name: str
    path: str
    is_removable: bool
    is_first_party: bool
    is_developer_app: bool
    is_internal: bool
    is_hidden: bool
    is_app_clip: bool
    bundle_version: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class ProcessToken:
    pid: int
    executable_url: str | None = None


@dataclass(frozen=True)
class LaunchRecord:
    pid: int
    process_identifier_version: int
    executable_url: str
    audit_token: tuple[int, ...]


@dataclass(frozen=True)
class SignalRecord:
    process: ProcessToken
    device_timestamp: datetime
    signal: int


@dataclass(frozen=True)
class IconRecord:
    data: bytes
    icon_width: float
    icon_height: float
    minimum_width: float
    minimum_height: float
    classes: tuple[str, ...]
    validation_token: bytes
    uuid: bytes
    uuid_classes: tuple[str, ...]

