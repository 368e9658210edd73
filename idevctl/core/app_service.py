"""Typed bindings for the CoreDevice app service features."""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable, Sequence
from typing import Any

from idevctl.core.errors import EncodingError, ProtocolViolationError
from idevctl.core.invoke import FEATURE_PREFIX, CoreDeviceClient
from idevctl.core.model import AppRecord, IconRecord, LaunchRecord, ProcessToken, SignalRecord
from idevctl.core.values import (
    Dictionary,
    XpcInt64,
    expect_dict,
    expect_list,
    get_bool,
    get_data,
    get_date,
    get_float,
    get_str,
    get_uint,
    plist_to_xml_bytes,
    require,
)

LOGGER = logging.getLogger(__name__)

APP_SERVICE_NAME = "com.apple.coredevice.appservice"

ICON_HEADER_SIZE = 0x30
_ICON_SIZE = struct.Struct("<ff")
_ICON_SIZE_OFFSET = 0x10

ArchiveDecoder = Callable[[bytes], Any]


def _decode_executable_url(value: Any, *, context: str) -> str:
    return get_str(expect_dict(value, context=context), "relative", context=context)


def decode_app_record(value: Any) -> AppRecord:
    context = "app entry"
    doc = expect_dict(value, context=context)
    return AppRecord(
        bundle_identifier=get_str(doc, "bundleIdentifier", context=context),
        name=get_str(doc, "name", context=context),
        path=get_str(doc, "path", context=context),
        is_removable=get_bool(doc, "isRemovable", context=context),
        is_first_party=get_bool(doc, "isFirstParty", context=context),
        is_developer_app=get_bool(doc, "isDeveloperApp", context=context),
        is_internal=get_bool(doc, "isInternal", context=context),
        is_hidden=get_bool(doc, "isHidden", context=context),
        is_app_clip=get_bool(doc, "isAppClip", context=context),
        bundle_version=get_str(doc, "bundleVersion", context=context, optional=True),
        version=get_str(doc, "version", context=context, optional=True),
    )


def decode_process_token(value: Any) -> ProcessToken:
    context = "process token"
    doc = expect_dict(value, context=context)
    url = doc.get("executableURL")
    return ProcessToken(
        pid=get_uint(doc, "processIdentifier", context=context),
        executable_url=_decode_executable_url(url, context=f"{context}.executableURL")
        if url is not None
        else None,
    )


def decode_launch_record(value: Any) -> LaunchRecord:
    context = "process token"
    doc = expect_dict(value, context=context)
    audit_token = expect_list(require(doc, "auditToken", context=context), context=f"{context}.auditToken")
    if any(isinstance(v, bool) or not isinstance(v, int) or v < 0 for v in audit_token):
        raise ProtocolViolationError(f"{context}.auditToken must contain unsigned integers")
    return LaunchRecord(
        pid=get_uint(doc, "processIdentifier", context=context),
        process_identifier_version=get_uint(doc, "processIdentifierVersion", context=context),
        executable_url=_decode_executable_url(
            require(doc, "executableURL", context=context),
            context=f"{context}.executableURL",
        ),
        audit_token=tuple(int(v) for v in audit_token),
    )


def decode_signal_record(value: Any) -> SignalRecord:
    context = "signal response"
    doc = expect_dict(value, context=context)
    return SignalRecord(
        process=decode_process_token(require(doc, "process", context=context)),
        device_timestamp=get_date(doc, "deviceTimestamp", context=context),
        signal=get_uint(doc, "signal", context=context),
    )


def _string_list(value: Any, *, context: str) -> tuple[str, ...]:
    items = expect_list(value, context=context)
    if not all(isinstance(item, str) for item in items):
        raise ProtocolViolationError(f"{context} must contain strings")
    return tuple(items)


def decode_icon_record(value: Any) -> IconRecord:
    context = "icon archive"
    doc = expect_dict(value, context=context)
    uuid_doc = expect_dict(require(doc, "uuid", context=context), context=f"{context}.uuid")
    return IconRecord(
        data=get_data(doc, "data", context=context),
        icon_width=get_float(doc, "iconSize.width", context=context),
        icon_height=get_float(doc, "iconSize.height", context=context),
        minimum_width=get_float(doc, "minimumSize.width", context=context),
        minimum_height=get_float(doc, "minimumSize.height", context=context),
        classes=_string_list(require(doc, "$classes", context=context), context=f"{context}.$classes"),
        validation_token=get_data(doc, "validationToken", context=context),
        uuid=get_data(uuid_doc, "NS.uuidbytes", context=f"{context}.uuid"),
        uuid_classes=_string_list(
            require(uuid_doc, "$classes", context=f"{context}.uuid"),
            context=f"{context}.uuid.$classes",
        ),
    )


def icon_pixels(data: bytes) -> tuple[int, int, bytes]:
    """Split raw icon image data into (width, height, RGBA8888 pixels).

    The blob starts with a 0x30-byte header holding the size as two
    little-endian float32 values at 0x10 (repeated at 0x20).
    """
    if len(data) < ICON_HEADER_SIZE:
        raise EncodingError(f"Icon data is {len(data)} bytes, shorter than its header")
    width_f, height_f = _ICON_SIZE.unpack_from(data, _ICON_SIZE_OFFSET)
    width, height = int(width_f), int(height_f)
    size = width * height * 4
    pixels = data[ICON_HEADER_SIZE : ICON_HEADER_SIZE + size]
    if len(pixels) != size:
        raise EncodingError(f"Icon data holds {len(pixels)} pixel bytes, expected {size}")
    return width, height, pixels


class AppServiceClient:
    def __init__(
        self,
        core: CoreDeviceClient,
        *,
        archive_decoder: ArchiveDecoder | None = None,
    ) -> None:
        self.core = core
        self.archive_decoder = archive_decoder

    def _invoke(self, feature: str, input: Dictionary | None = None) -> Any:
        return self.core.invoke(FEATURE_PREFIX + feature, input)

    def list_apps(
        self,
        app_clips: bool = True,
        removable_apps: bool = True,
        hidden_apps: bool = True,
        internal_apps: bool = True,
        default_apps: bool = True,
    ) -> list[AppRecord]:
        result = self._invoke(
            "listapps",
            {
                "includeAppClips": app_clips,
                "includeRemovableApps": removable_apps,
                "includeHiddenApps": hidden_apps,
                "includeInternalApps": internal_apps,
                "includeDefaultApps": default_apps,
            },
        )
        entries = expect_list(result, context="listapps result")
        return [decode_app_record(entry) for entry in entries]

    def launch_application(
        self,
        bundle_id: str,
        arguments: Sequence[str] = (),
        kill_existing: bool = False,
        start_suspended: bool = False,
        environment: Dictionary | None = None,
        platform_options: Dictionary | None = None,
    ) -> LaunchRecord:
        request = {
            "applicationSpecifier": {"bundleIdentifier": {"_0": bundle_id}},
            "options": {
                "arguments": list(arguments),
                "environmentVariables": environment or {},
                "standardIOUsesPseudoterminals": True,
                "startStopped": start_suspended,
                "terminateExisting": kill_existing,
                "user": {"shortName": "mobile"},
                "platformSpecificOptions": plist_to_xml_bytes(platform_options or {}),
            },
            "standardIOIdentifiers": {},
        }
        result = self._invoke("launchapplication", request)
        if not isinstance(result, dict) or "processToken" not in result:
            LOGGER.warning("CoreDevice result did not contain a processToken")
            raise ProtocolViolationError("launchapplication result is missing 'processToken'")
        return decode_launch_record(result["processToken"])

    def list_processes(self) -> list[ProcessToken]:
        result = self._invoke("listprocesses")
        doc = expect_dict(result, context="listprocesses result")
        tokens = expect_list(
            require(doc, "processTokens", context="listprocesses result"),
            context="listprocesses result.processTokens",
        )
        return [decode_process_token(token) for token in tokens]

    def uninstall_app(self, bundle_id: str) -> None:
        # The device replies the same way whether or not the removal worked.
        self._invoke("uninstallapp", {"bundleIdentifier": bundle_id})

    def send_signal(self, pid: int, signal: int) -> SignalRecord:
        result = self._invoke(
            "sendsignaltoprocess",
            {"process": {"processIdentifier": XpcInt64(pid)}, "signal": XpcInt64(signal)},
        )
        return decode_signal_record(result)

    def fetch_app_icon(
        self,
        bundle_id: str,
        width: float,
        height: float,
        scale: float,
        allow_placeholder: bool,
    ) -> IconRecord:
        result = self._invoke(
            "fetchappicons",
            {
                "width": float(width),
                "height": float(height),
                "scale": float(scale),
                "allowPlaceholder": allow_placeholder,
                "bundleIdentifier": bundle_id,
            },
        )
        container = result.get("appIconContainer") if isinstance(result, dict) else None
        image = container.get("iconImage") if isinstance(container, dict) else None
        if not isinstance(image, (bytes, bytearray)):
            LOGGER.warning("Did not receive appIconContainer/iconImage data")
            raise ProtocolViolationError("fetchappicons result is missing appIconContainer.iconImage data")
        if self.archive_decoder is None:
            raise EncodingError("No keyed-archive decoder configured for icon data")
        return decode_icon_record(self.archive_decoder(bytes(image)))
