from __future__ import annotations

import pytest

from fakes import FakeDialer, FakeStream, FakeXpcConnection, make_record, plist_frame
from idevctl.api import Client, ClientConfig, NotConnectedError
from idevctl.core.model import GeneratedCertificates


def _frames(*messages: dict) -> bytes:
    return b"".join(plist_frame(m) for m in messages)


class FakeAuthority:
    def generate_certificates(self, device_public_key: bytes) -> GeneratedCertificates:
        return GeneratedCertificates(b"dev", b"host", b"key")


def test_client_requires_host_or_dialer() -> None:
    with pytest.raises(NotConnectedError):
        Client(config=ClientConfig())


def test_public_client_get_value() -> None:
    lockdown = FakeStream(_frames({"Value": "iPhone"}))
    client = Client(dialer=FakeDialer({62078: [lockdown]}), config=ClientConfig(label="tool"))

    assert client.get_value("DeviceName") == "iPhone"
    assert lockdown.sent_plists() == [{"Label": "tool", "Request": "GetValue", "Key": "DeviceName"}]
    client.close()
    assert lockdown.closed


def test_public_client_lists_apps_and_closes_service() -> None:
    lockdown = FakeStream(_frames({"Port": 4000}))
    proxy = FakeStream(
        _frames({"CurrentList": [{"CFBundleIdentifier": "com.example.app"}], "Status": "Complete"})
    )
    client = Client(dialer=FakeDialer({62078: [lockdown], 4000: [proxy]}), config=ClientConfig())

    apps = client.list_installed_apps(options={"ApplicationType": "User"})

    assert apps == [{"CFBundleIdentifier": "com.example.app"}]
    assert proxy.closed
    assert proxy.sent_plists() == [{"Command": "Browse", "ClientOptions": {"ApplicationType": "User"}}]


def test_public_client_pair_keeps_record_for_sessions() -> None:
    lockdown = FakeStream(
        _frames(
            {"Value": b"pubkey"},
            {"Value": "aa:bb:cc:dd:ee:ff"},
            {"EscrowBag": b"bag"},
            {"EnableSessionSSL": True},
            {"Port": 5000},
        )
    )
    client = Client(dialer=FakeDialer({62078: [lockdown]}), config=ClientConfig())

    record = client.pair("HOST", "BUID", FakeAuthority())
    descriptor = client.discover("misagent")

    assert record.escrow_bag == b"bag"
    assert lockdown.tls_records == [record]
    assert descriptor.name == "com.apple.misagent"


def test_public_client_app_service_handshakes_with_configured_version() -> None:
    connection = FakeXpcConnection([{"CoreDevice.output": {"processTokens": []}}])
    client = Client(dialer=FakeDialer({}), config=ClientConfig(core_device_version="501.2"))

    apps = client.app_service(connection)

    assert connection.handshakes == 1
    assert apps.list_processes() == []
    assert connection.sent[0]["CoreDevice.coreDeviceVersion"]["stringValue"] == "501.2"


def test_public_client_remote_profiles_checks_in() -> None:
    stream = FakeStream(_frames({"Request": "RSDCheckin"}, {"Request": "StartService"}, {"Status": 0}))
    client = Client(dialer=FakeDialer({}), config=ClientConfig(), pairing_record=make_record())

    client.remote_profiles(stream).remove("profile-id")

    assert [m.get("MessageType", m.get("Request")) for m in stream.sent_plists()] == [
        "RSDCheckin",
        "Remove",
    ]
