from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from emma_inventory.normalize.flatten import flatten_record, format_scalar
from emma_inventory.util.errors import EncodingError


def test_flatten_nested_paths() -> None:
    flat = flatten_record({"a": {"b": 1, "c": [2, 3]}})
    assert flat == {"a.b": "1", "a.c.0": "2", "a.c.1": "3"}


@pytest.mark.parametrize("value, expected", [(5, "5"), ("x", "x"), (None, ""), (True, "true")])
def test_flatten_bare_scalar_uses_empty_key(value, expected) -> None:
    assert flatten_record(value) == {"": expected}


def test_flatten_merges_into_accumulator_with_prefix() -> None:
    acc = {"existing": "1"}
    out = flatten_record({"k": "v"}, "root.", acc)
    assert out is acc
    assert acc == {"existing": "1", "root.k": "v"}


def test_flatten_top_level_list_of_objects() -> None:
    flat = flatten_record([{"id": 1}, {"id": 2, "tags": []}])
    assert flat == {"0.id": "1", "1.id": "2"}


def test_flatten_empty_containers_contribute_nothing() -> None:
    assert flatten_record({"disks": [], "labels": {}, "name": "vm"}) == {"name": "vm"}


def test_flatten_does_not_mutate_record() -> None:
    record = {"a": {"b": [1, {"c": None}]}}
    flatten_record(record)
    assert record == {"a": {"b": [1, {"c": None}]}}


def test_flatten_vm_like_record() -> None:
    vm = {
        "id": 101,
        "name": "web-1",
        "status": "RUNNING",
        "vCpu": 2,
        "ramGb": 4.0,
        "disks": [{"id": 7, "sizeGb": 40.5, "type": "SSD", "isBootable": True}],
        "provider": {"id": 3, "name": "AWS"},
        "ipv4": None,
    }
    flat = flatten_record(vm)
    assert flat["ramGb"] == "4"
    assert flat["disks.0.sizeGb"] == "40.5"
    assert flat["disks.0.isBootable"] == "true"
    assert flat["provider.name"] == "AWS"
    assert flat["ipv4"] == ""
    assert list(flat)[:3] == ["id", "name", "status"]


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        (True, "true"),
        (False, "false"),
        (0, "0"),
        (-12, "-12"),
        (2.0, "2"),
        (-0.0, "0"),
        (1.5, "1.5"),
        (0.1, "0.1"),
        (1e-07, "1e-07"),
        (1e21, "1e+21"),
        (123456789.0, "123456789"),
        (float("nan"), "nan"),
        (float("inf"), "inf"),
        (float("-inf"), "-inf"),
        ("a,b \"q\"", "a,b \"q\""),
        (Decimal("2.50"), "2.5"),
        (Decimal("3.0"), "3"),
        (b"bytes", "bytes"),
    ],
)
def test_format_scalar_is_pinned(value, expected) -> None:
    assert format_scalar(value) == expected


def test_format_scalar_datetime_is_iso() -> None:
    ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert format_scalar(ts) == "2024-01-02T03:04:05+00:00"


def test_unknown_leaf_type_raises_encoding_error_with_path() -> None:
    with pytest.raises(EncodingError) as excinfo:
        flatten_record({"a": {"b": object()}})
    assert "'a.b'" in str(excinfo.value)
