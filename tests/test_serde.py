from __future__ import annotations

import json

import pytest

from trendpilot.storage import serde


def test_serde_roundtrips_tagged_types() -> None:
    value = {
        "plain": {"a": [1, 2.5, None, True]},
        "int_keys": {1: "one", 2: "two"},
        "tags": {"x", "y"},
        "raw": b"\x00\xffabc",
        "pair": (1, ("nested", b"z")),
    }
    out = serde.loads(serde.dumps(value))
    assert out == value
    assert isinstance(out["pair"], tuple)
    assert isinstance(out["raw"], bytes)


def test_plain_string_keyed_dict_is_emitted_as_json_object() -> None:
    text = serde.dumps({"a": 1, "b": [1, 2]})
    assert json.loads(text) == {"a": 1, "b": [1, 2]}


def test_dict_using_the_tag_key_is_wrapped_as_map() -> None:
    value = {"__type": "Set", "value": [1]}
    encoded = json.loads(serde.dumps(value))
    assert encoded["__type"] == "Map"
    assert serde.loads(serde.dumps(value)) == value


def test_equal_sets_serialize_identically() -> None:
    assert serde.dumps({3, 1, 2}) == serde.dumps({2, 3, 1})


def test_unsupported_type_is_rejected() -> None:
    with pytest.raises(TypeError):
        serde.dumps({"when": object()})


def test_unknown_tag_is_rejected() -> None:
    with pytest.raises(ValueError):
        serde.loads('{"__type": "Decimal", "value": "1.0"}')
