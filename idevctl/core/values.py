"""Structured value model shared by the plist and XPC protocols.

Plist-flavored values are plain Python objects: ``bool``, ``int``, ``float``,
``str``, ``bytes``, ``datetime``, ``list`` and ``dict`` with string keys. The
XPC flavor uses the same shapes plus ``None`` and the :class:`XpcInt64` /
:class:`XpcUInt64` markers, because XPC distinguishes signed from unsigned
integers on the wire. Decoding helpers are structural: they check shapes and
raise :class:`ProtocolViolationError`, they never build class hierarchies.
"""

from __future__ import annotations

import logging
import plistlib
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Union

from idevctl.core.errors import EncodingError, ProtocolViolationError

LOGGER = logging.getLogger(__name__)

Value = Union[None, bool, int, float, str, bytes, datetime, list, dict]
Dictionary = dict[str, Any]

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1


class XpcInt64(int):
    """Signed 64-bit XPC integer."""

    def __new__(cls, value: int) -> XpcInt64:
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise EncodingError(f"{value} does not fit in a signed 64-bit integer")
        return super().__new__(cls, value)


class XpcUInt64(int):
    """Unsigned 64-bit XPC integer."""

    def __new__(cls, value: int) -> XpcUInt64:
        if not 0 <= value <= _UINT64_MAX:
            raise EncodingError(f"{value} does not fit in an unsigned 64-bit integer")
        return super().__new__(cls, value)


def to_xpc(value: Any) -> Any:
    """Convert a plist-flavored tree to the XPC flavor.

    Integers become :class:`XpcInt64` when they fit, :class:`XpcUInt64`
    otherwise. Values that already carry an XPC marker are kept as they are.
    """
    if value is None or isinstance(value, (bool, XpcInt64, XpcUInt64)):
        return value
    if isinstance(value, int):
        if value <= _INT64_MAX:
            return XpcInt64(value)
        return XpcUInt64(value)
    if isinstance(value, (float, str, bytes, datetime)):
        return value
    if isinstance(value, (list, tuple)):
        return [to_xpc(item) for item in value]
    if isinstance(value, Mapping):
        converted: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodingError(f"Dictionary keys must be strings, got {type(key).__name__}")
            converted[key] = to_xpc(item)
        return converted
    raise EncodingError(f"Unsupported value type {type(value).__name__}")


def from_xpc(value: Any) -> Any:
    """Strip XPC integer markers, returning a plist-flavored tree."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, list):
        return [from_xpc(item) for item in value]
    if isinstance(value, dict):
        return {key: from_xpc(item) for key, item in value.items()}
    return value


def plist_to_xml_bytes(value: Any) -> bytes:
    """Serialize a value as an XML plist document."""
    try:
        return plistlib.dumps(from_xpc(value), fmt=plistlib.FMT_XML, sort_keys=False)
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodingError(f"Could not serialize plist: {exc}") from exc


def expect_dict(value: Any, *, context: str) -> Dictionary:
    if not isinstance(value, dict):
        LOGGER.warning("%s was not a dictionary", context)
        raise ProtocolViolationError(f"{context} must be a dictionary, got {type(value).__name__}")
    return value


def expect_list(value: Any, *, context: str) -> list[Any]:
    if not isinstance(value, list):
        LOGGER.warning("%s was not an array", context)
        raise ProtocolViolationError(f"{context} must be an array, got {type(value).__name__}")
    return value


def require(doc: Mapping[str, Any], key: str, *, context: str) -> Any:
    if key not in doc:
        LOGGER.warning("%s did not contain %s", context, key)
        raise ProtocolViolationError(f"{context} is missing '{key}'")
    return doc[key]


def get_str(doc: Mapping[str, Any], key: str, *, context: str, optional: bool = False) -> str | None:
    if optional and key not in doc:
        return None
    value = require(doc, key, context=context)
    if not isinstance(value, str):
        raise ProtocolViolationError(f"{context}.{key} must be a string")
    return value


def get_bool(doc: Mapping[str, Any], key: str, *, context: str) -> bool:
    value = require(doc, key, context=context)
    if not isinstance(value, bool):
        raise ProtocolViolationError(f"{context}.{key} must be a boolean")
    return value


def get_uint(doc: Mapping[str, Any], key: str, *, context: str) -> int:
    value = require(doc, key, context=context)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ProtocolViolationError(f"{context}.{key} must be an unsigned integer")
    return int(value)


def get_float(doc: Mapping[str, Any], key: str, *, context: str) -> float:
    value = require(doc, key, context=context)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolViolationError(f"{context}.{key} must be a number")
    return float(value)


def get_data(doc: Mapping[str, Any], key: str, *, context: str) -> bytes:
    value = require(doc, key, context=context)
    if not isinstance(value, (bytes, bytearray)):
        raise ProtocolViolationError(f"{context}.{key} must be data")
    return bytes(value)


def get_date(doc: Mapping[str, Any], key: str, *, context: str) -> datetime:
    value = require(doc, key, context=context)
    if not isinstance(value, datetime):
        raise ProtocolViolationError(f"{context}.{key} must be a date")
    return value
