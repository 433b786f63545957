"""trendpilot.storage.serde

Stable JSON serialization for checkpoint blobs and pending-write values.

JSON has no native representation for non-string-keyed maps, sets, byte
buffers or tuples. Those are encoded as tagged wrapper objects:

    {"__type": "Map",   "value": [[k, v], ...]}
    {"__type": "Set",   "value": [...]}
    {"__type": "Bytes", "value": [0, 255, ...]}
    {"__type": "Tuple", "value": [...]}

so that `loads(dumps(x)) == x` holds recursively.

A plain dict is emitted as a JSON object only when every key is a string and
none of them is the reserved tag key; otherwise it is tagged as a Map.
"""

from __future__ import annotations

import json
from typing import Any

TYPE_KEY = "__type"
VALUE_KEY = "value"


def _encode(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return {TYPE_KEY: "Bytes", VALUE_KEY: list(bytes(value))}
    if isinstance(value, tuple):
        return {TYPE_KEY: "Tuple", VALUE_KEY: [_encode(v) for v in value]}
    if isinstance(value, list):
        return [_encode(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [_encode(v) for v in value]
        # Stable output for equal sets.
        items.sort(key=lambda v: json.dumps(v, sort_keys=True))
        return {TYPE_KEY: "Set", VALUE_KEY: items}
    if isinstance(value, dict):
        if all(isinstance(k, str) for k in value) and TYPE_KEY not in value:
            return {k: _encode(v) for k, v in value.items()}
        return {TYPE_KEY: "Map", VALUE_KEY: [[_encode(k), _encode(v)] for k, v in value.items()]}
    raise TypeError(f"Object of type {type(value).__name__} is not serializable")


def _hashable(value: Any) -> Any:
    # Decoded sets used as map keys or set members must stay hashable.
    if isinstance(value, set):
        return frozenset(value)
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, list):
        return [_decode(v) for v in value]
    if not isinstance(value, dict):
        return value

    tag = value.get(TYPE_KEY)
    if tag is None or VALUE_KEY not in value or len(value) != 2:
        return {k: _decode(v) for k, v in value.items()}

    raw = value[VALUE_KEY]
    if tag == "Map":
        return {_hashable(_decode(k)): _decode(v) for k, v in raw}
    if tag == "Set":
        return {_hashable(_decode(v)) for v in raw}
    if tag == "Bytes":
        return bytes(raw)
    if tag == "Tuple":
        return tuple(_decode(v) for v in raw)
    raise ValueError(f"Unknown serde tag: {tag!r}")


def dumps(obj: Any) -> str:
    return json.dumps(_encode(obj), ensure_ascii=False, separators=(",", ":"))


def loads(text: str) -> Any:
    return _decode(json.loads(text))
