"""
Content Field Codec
===================

JSON encoding for tags, labels and custom fields.

Only values that survive a JSON round trip unchanged are accepted. Anything
else (tuples, sets, datetimes, non-string keys, NaN) raises
``SerializationException`` instead of being coerced or dropped.
"""

import json
import math
from typing import Any, Dict, Iterable, Optional, Set

from src.core import SerializationException


def _ensure_json_safe(value: Any, field: str, path: str) -> None:
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise SerializationException(field, f"non-finite number at {path}")
        return
    if isinstance(value, list):
        for index, element in enumerate(value):
            _ensure_json_safe(element, field, f"{path}[{index}]")
        return
    if isinstance(value, dict):
        for key, element in value.items():
            if not isinstance(key, str):
                raise SerializationException(field, f"non-string key {key!r} at {path}")
            _ensure_json_safe(element, field, f"{path}.{key}")
        return
    raise SerializationException(
        field, f"unsupported type {type(value).__name__} at {path}"
    )


def _loads(raw: Optional[str], field: str) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SerializationException(field, f"stored value is not valid JSON ({e})") from e


def encode_tags(tags: Optional[Iterable[str]]) -> str:
    """Tags are a set; stored as a sorted JSON array."""
    tags = set(tags or ())
    for tag in tags:
        if not isinstance(tag, str):
            raise SerializationException("tags", f"tag {tag!r} is not a string")
    return json.dumps(sorted(tags))


def decode_tags(raw: Optional[str]) -> Set[str]:
    data = _loads(raw, "tags")
    if data is None:
        return set()
    if not isinstance(data, list) or not all(isinstance(t, str) for t in data):
        raise SerializationException("tags", "stored value is not a list of strings")
    return set(data)


def encode_labels(labels: Optional[Dict[str, str]]) -> str:
    labels = labels or {}
    for key, value in labels.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise SerializationException(
                "labels", f"label {key!r}={value!r} is not a string pair"
            )
    return json.dumps(labels, sort_keys=True)


def decode_labels(raw: Optional[str]) -> Dict[str, str]:
    data = _loads(raw, "labels")
    if data is None:
        return {}
    if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
        raise SerializationException("labels", "stored value is not a string map")
    return data


def encode_custom_fields(fields: Optional[Dict[str, Any]]) -> str:
    fields = fields or {}
    if not isinstance(fields, dict):
        raise SerializationException("custom_fields", "value is not a mapping")
    _ensure_json_safe(fields, "custom_fields", "$")
    return json.dumps(fields, sort_keys=True, allow_nan=False)


def decode_custom_fields(raw: Optional[str]) -> Dict[str, Any]:
    data = _loads(raw, "custom_fields")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SerializationException("custom_fields", "stored value is not a mapping")
    return data


ENCODERS = {
    "tags": encode_tags,
    "labels": encode_labels,
    "custom_fields": encode_custom_fields,
}
