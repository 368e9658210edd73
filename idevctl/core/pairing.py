"""Pairing bootstrap and pairing-record persistence.

Pairing asks the device for its public key, issues a certificate set for it
through an external certificate authority, and submits the resulting record
with a ``Pair`` request. While the trust dialog is showing on the device every
reply is ``PairingDialogResponsePending``; the identical request is resent
after a fixed interval until the user answers, however long that takes.
"""

from __future__ import annotations

import logging
import plistlib
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from idevctl.core.errors import ConfigLoadError, EncodingError, PendingError, ProtocolViolationError
from idevctl.core.model import GeneratedCertificates, PairingRecord
from idevctl.core.values import Dictionary, expect_dict, get_data, get_str

if TYPE_CHECKING:
    from idevctl.core.lockdown import LockdownClient

LOGGER = logging.getLogger(__name__)

PAIRING_PROTOCOL_VERSION = "2"
DEFAULT_RETRY_INTERVAL_S = 1.0


class CertificateAuthority(Protocol):
    def generate_certificates(self, device_public_key: bytes) -> GeneratedCertificates:
        """Issue device and host certificates for ``device_public_key``.

        The host certificate doubles as the root certificate.
        """


def record_to_value(record: PairingRecord) -> Dictionary:
    value: Dictionary = {
        "DevicePublicKey": record.device_public_key,
        "DeviceCertificate": record.device_certificate,
        "HostCertificate": record.host_certificate,
        "HostID": record.host_id,
        "RootCertificate": record.root_certificate,
        "RootPrivateKey": record.root_private_key,
        "WiFiMACAddress": record.wifi_mac_address,
        "SystemBUID": record.system_buid,
    }
    if record.host_private_key is not None:
        value["HostPrivateKey"] = record.host_private_key
    if record.escrow_bag is not None:
        value["EscrowBag"] = record.escrow_bag
    return value


def record_from_value(value: Any) -> PairingRecord:
    context = "pairing record"
    doc = expect_dict(value, context=context)
    return PairingRecord(
        host_id=get_str(doc, "HostID", context=context),
        system_buid=get_str(doc, "SystemBUID", context=context),
        device_public_key=get_data(doc, "DevicePublicKey", context=context),
        device_certificate=get_data(doc, "DeviceCertificate", context=context),
        host_certificate=get_data(doc, "HostCertificate", context=context),
        root_certificate=get_data(doc, "RootCertificate", context=context),
        root_private_key=get_data(doc, "RootPrivateKey", context=context),
        wifi_mac_address=get_str(doc, "WiFiMACAddress", context=context),
        host_private_key=get_data(doc, "HostPrivateKey", context=context)
        if "HostPrivateKey" in doc
        else None,
        escrow_bag=get_data(doc, "EscrowBag", context=context) if "EscrowBag" in doc else None,
    )


def load_pairing_record(path: Path) -> PairingRecord:
    try:
        content = path.read_bytes()
    except OSError as exc:
        raise ConfigLoadError(f"Could not read pairing record {path}: {exc}") from exc
    try:
        value = plistlib.loads(content)
    except (plistlib.InvalidFileException, ValueError) as exc:
        raise EncodingError(f"Pairing record {path} is not a valid plist: {exc}") from exc
    return record_from_value(value)


def save_pairing_record(record: PairingRecord, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(plistlib.dumps(record_to_value(record), fmt=plistlib.FMT_XML))


def pair(
    lockdown: LockdownClient,
    host_id: str,
    system_buid: str,
    authority: CertificateAuthority,
    *,
    retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S,
    sleep: Callable[[float], None] = time.sleep,
) -> PairingRecord:
    public_key = lockdown.get_value("DevicePublicKey")
    if not isinstance(public_key, (bytes, bytearray)):
        LOGGER.warning("Did not get public key data response")
        raise ProtocolViolationError("DevicePublicKey must be data")
    public_key = bytes(public_key)

    wifi_mac = lockdown.get_value("WiFiAddress")
    if not isinstance(wifi_mac, str):
        LOGGER.warning("Did not get WiFiAddress string")
        raise ProtocolViolationError("WiFiAddress must be a string")

    certificates = authority.generate_certificates(public_key)
    record = PairingRecord(
        host_id=host_id,
        system_buid=system_buid,
        device_public_key=public_key,
        device_certificate=certificates.device_certificate,
        host_certificate=certificates.host_certificate,
        root_certificate=certificates.host_certificate,
        root_private_key=certificates.private_key,
        wifi_mac_address=wifi_mac,
    )
    request = {
        "Label": lockdown.label,
        "Request": "Pair",
        "PairRecord": record_to_value(record),
        "ProtocolVersion": PAIRING_PROTOCOL_VERSION,
        "PairingOptions": {"ExtendedPairingErrors": True},
    }

    attempts = 0
    while True:
        attempts += 1
        try:
            response = lockdown.request(request)
        except PendingError:
            LOGGER.info("Waiting for the user to trust this host (attempt %d)", attempts)
            sleep(retry_interval_s)
            continue
        break

    record.host_private_key = certificates.private_key
    escrow_bag = response.get("EscrowBag")
    if isinstance(escrow_bag, (bytes, bytearray)):
        record.escrow_bag = bytes(escrow_bag)
    LOGGER.info("Paired with host id %s", host_id)
    return record
