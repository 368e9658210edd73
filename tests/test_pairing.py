from __future__ import annotations

from pathlib import Path

import pytest

from fakes import ScriptedConnection, make_record
from idevctl.core.errors import DeviceError, PendingError, ProtocolViolationError
from idevctl.core.lockdown import LockdownClient
from idevctl.core.model import GeneratedCertificates
from idevctl.core.pairing import load_pairing_record, record_from_value, record_to_value, save_pairing_record


class FakeAuthority:
    def __init__(self) -> None:
        self.keys: list[bytes] = []

    def generate_certificates(self, device_public_key: bytes) -> GeneratedCertificates:
        self.keys.append(device_public_key)
        return GeneratedCertificates(
            device_certificate=b"dev-cert",
            host_certificate=b"host-cert",
            private_key=b"private-key",
        )


def _pending() -> PendingError:
    return PendingError("PairingDialogResponsePending")


def test_pending_replies_are_retried_after_fixed_delay() -> None:
    connection = ScriptedConnection(
        [
            {"Value": b"pubkey"},
            {"Value": "aa:bb:cc:dd:ee:ff"},
            _pending(),
            _pending(),
            {"EscrowBag": b"escrow"},
        ]
    )
    sleeps: list[float] = []
    authority = FakeAuthority()

    record = LockdownClient(connection).pair(
        "HOST", "BUID", authority, retry_interval_s=1.0, sleep=sleeps.append
    )

    assert sleeps == [1.0, 1.0]
    assert authority.keys == [b"pubkey"]
    pair_requests = connection.sent[2:]
    assert len(pair_requests) == 3
    assert all(req == pair_requests[0] for req in pair_requests)
    request = pair_requests[0]
    assert request["Request"] == "Pair"
    assert request["ProtocolVersion"] == "2"
    assert request["PairingOptions"] == {"ExtendedPairingErrors": True}
    assert "HostPrivateKey" not in request["PairRecord"]
    assert request["PairRecord"]["RootCertificate"] == b"host-cert"

    assert record.host_id == "HOST"
    assert record.system_buid == "BUID"
    assert record.root_certificate == record.host_certificate == b"host-cert"
    assert record.host_private_key == b"private-key"
    assert record.escrow_bag == b"escrow"
    assert record.wifi_mac_address == "aa:bb:cc:dd:ee:ff"


def test_other_errors_surface_without_retry() -> None:
    connection = ScriptedConnection(
        [
            {"Value": b"pubkey"},
            {"Value": "aa:bb:cc:dd:ee:ff"},
            DeviceError("UserDeniedPairing"),
            {"EscrowBag": b"never-read"},
        ]
    )
    sleeps: list[float] = []

    with pytest.raises(DeviceError) as exc:
        LockdownClient(connection).pair("HOST", "BUID", FakeAuthority(), sleep=sleeps.append)

    assert exc.value.code == "UserDeniedPairing"
    assert sleeps == []
    assert len(connection.sent) == 3


def test_missing_escrow_bag_is_allowed() -> None:
    connection = ScriptedConnection([{"Value": b"k"}, {"Value": "mac"}, {}])
    record = LockdownClient(connection).pair("HOST", "BUID", FakeAuthority(), sleep=lambda _: None)
    assert record.escrow_bag is None


def test_public_key_must_be_data() -> None:
    connection = ScriptedConnection([{"Value": "not-bytes"}])
    with pytest.raises(ProtocolViolationError):
        LockdownClient(connection).pair("HOST", "BUID", FakeAuthority())


def test_wifi_address_must_be_string() -> None:
    connection = ScriptedConnection([{"Value": b"k"}, {"Value": 12}])
    with pytest.raises(ProtocolViolationError):
        LockdownClient(connection).pair("HOST", "BUID", FakeAuthority())


def test_record_value_round_trip_and_file_persistence(tmp_path: Path) -> None:
    record = make_record(escrow_bag=b"bag")
    value = record_to_value(record)
    assert value["HostID"] == "HOST-ID"
    assert value["WiFiMACAddress"] == "aa:bb:cc:dd:ee:ff"
    assert record_from_value(value) == record

    path = tmp_path / "records" / "device.plist"
    save_pairing_record(record, path)
    assert load_pairing_record(path) == record


def test_record_missing_field_is_rejected() -> None:
    value = record_to_value(make_record())
    del value["SystemBUID"]
    with pytest.raises(ProtocolViolationError):
        record_from_value(value)
