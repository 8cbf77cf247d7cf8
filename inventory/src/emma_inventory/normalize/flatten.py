from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Sequence

from ..util.errors import EncodingError

FlatRow = Dict[str, str]

PATH_SEPARATOR = "."

# Floats at or above this magnitude keep exponent notation.
_INTEGRAL_FLOAT_LIMIT = 1e21


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer() and abs(value) < _INTEGRAL_FLOAT_LIMIT:
        return str(int(value))
    return repr(value)


def format_scalar(value: Any) -> str:
    """
    Render one leaf value as CSV text.

    None -> "", booleans -> "true"/"false", integral floats without a
    fractional part, other floats in shortest round-trip form.
    """
    if value is None:
        return ""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Decimal):
        if not value.is_finite():
            return _format_float(float(value))
        if value == value.to_integral_value():
            return format(value.to_integral_value(), "f")
        return format(value.normalize(), "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "replace")
    raise EncodingError(f"Cannot render value of type {type(value).__name__} as CSV text")


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def flatten_record(record: Any, prefix: str = "", out: Optional[FlatRow] = None) -> FlatRow:
    """
    Flatten a nested JSON value into dotted-path keys.

    Mapping keys and sequence indices are joined with "." so
    {"a": {"b": 1, "c": [2, 3]}} becomes {"a.b": "1", "a.c.0": "2", "a.c.1": "3"}.
    A bare scalar lands under the empty key. Results are merged into `out`
    when given; the record itself is never modified.
    """
    if out is None:
        out = {}
    if isinstance(record, Mapping):
        for key, value in record.items():
            flatten_record(value, f"{prefix}{key}{PATH_SEPARATOR}", out)
    elif _is_sequence(record):
        for index, value in enumerate(record):
            flatten_record(value, f"{prefix}{index}{PATH_SEPARATOR}", out)
    else:
        key = prefix[: -len(PATH_SEPARATOR)] if prefix else ""
        try:
            out[key] = format_scalar(record)
        except EncodingError as e:
            raise EncodingError(f"{e} at {key or '<root>'!r}") from e
    return out
