from __future__ import annotations

from datetime import datetime

import pytest

from idevctl.core.errors import EncodingError, ProtocolViolationError
from idevctl.core.framing import PlistCodec
from idevctl.core.values import XpcInt64, XpcUInt64, from_xpc, get_uint, to_xpc

TREE = {
    "bool": True,
    "signed": -42,
    "unsigned": 2**40,
    "real": 1.5,
    "string": "héllo",
    "bytes": b"\x00\x01\xff",
    "date": datetime(2024, 1, 2, 3, 4, 5),
    "array": [1, "two", [False, {"nested": b"x"}]],
    "dict": {"inner": {"deeper": [0.25, "leaf"]}, "empty": {}},
}


@pytest.mark.parametrize("codec", [PlistCodec.XML, PlistCodec.BINARY])
def test_plist_round_trip_preserves_every_kind(codec: PlistCodec) -> None:
    assert PlistCodec.decode(codec.encode(TREE)) == TREE


def test_null_cannot_be_encoded_as_plist() -> None:
    with pytest.raises(EncodingError):
        PlistCodec.XML.encode({"value": None})


def test_to_xpc_marks_integer_signedness() -> None:
    converted = to_xpc({"small": 5, "negative": -1, "huge": 2**63, "flag": True, "items": [7]})

    assert type(converted["small"]) is XpcInt64
    assert type(converted["negative"]) is XpcInt64
    assert type(converted["huge"]) is XpcUInt64
    assert converted["flag"] is True
    assert type(converted["items"][0]) is XpcInt64


def test_to_xpc_rejects_non_string_keys() -> None:
    with pytest.raises(EncodingError):
        to_xpc({1: "one"})


def test_from_xpc_strips_markers() -> None:
    value = from_xpc({"a": XpcUInt64(3), "b": [XpcInt64(-2)], "c": None})
    assert value == {"a": 3, "b": [-2], "c": None}
    assert type(value["a"]) is int


def test_xpc_markers_enforce_ranges() -> None:
    with pytest.raises(EncodingError):
        XpcUInt64(-1)
    with pytest.raises(EncodingError):
        XpcInt64(2**63)


def test_get_uint_rejects_booleans_and_negatives() -> None:
    with pytest.raises(ProtocolViolationError):
        get_uint({"n": True}, "n", context="doc")
    with pytest.raises(ProtocolViolationError):
        get_uint({"n": -3}, "n", context="doc")
    assert get_uint({"n": 3}, "n", context="doc") == 3
