"""JSON output for conversion reports (used by ``ole2math --json``)."""

import typing
from dataclasses import fields, is_dataclass
from enum import Enum

# Names the dataclass a serialized object came from
_TYPE_KEY = "_type"


def _serialize_for_json(value: typing.Any) -> typing.Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        result = {
            _TYPE_KEY: type(value).__name__,
        }
        for item in fields(value):
            result[item.name] = _serialize_for_json(getattr(value, item.name))
        return result
    if isinstance(value, typing.Mapping):
        return {str(key): _serialize_for_json(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_for_json(item) for item in value]
    return value


def serialize_report(report: typing.Any) -> dict:
    """
    Turn a ConversionReport (or any result dataclass) into a JSON-safe dict.

    Enums become their string values; a report additionally carries its
    equation ``count``.
    """
    serialized = _serialize_for_json(report)
    if not isinstance(serialized, dict):
        return {"value": serialized}
    if hasattr(report, "count") and "equations" in serialized:
        serialized["count"] = report.count
    return serialized
