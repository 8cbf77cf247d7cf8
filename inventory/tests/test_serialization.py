from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from emma_inventory.logging import JsonFormatter, LogConfig, PlainFormatter, add_run_log_file, setup_logging
from emma_inventory.util.serialization import REDACTED_VALUE, sanitize_for_json


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="unit",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_sanitize_for_json_redacts_sensitive_fields() -> None:
    payload = {
        "clientSecret": "secret",
        "accessToken": "abc",
        "nested": {"password": "pw", "clientId": "id"},
    }

    sanitized = sanitize_for_json(payload)

    assert sanitized["clientSecret"] == REDACTED_VALUE
    assert sanitized["accessToken"] == REDACTED_VALUE
    assert sanitized["nested"]["password"] == REDACTED_VALUE
    assert sanitized["nested"]["clientId"] == "id"


def test_sanitize_for_json_handles_datetime_and_bytes() -> None:
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    payload = {"when": ts, "blob": b"bytes", "items": ("a", "b")}

    sanitized = sanitize_for_json(payload)

    assert sanitized["when"] == "2024-01-01T00:00:00+00:00"
    assert sanitized["blob"] == "bytes"
    assert sanitized["items"] == ["a", "b"]


def test_json_formatter_skips_non_serializable_extras() -> None:
    formatter = JsonFormatter()
    record = _record()
    record.good = {"a": 1, "b": [1, 2]}
    record.bad = {"obj": object()}

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "hello"
    assert payload["good"] == {"a": 1, "b": [1, 2]}
    assert "bad" not in payload


def test_plain_formatter_renders_step_phase_and_tenant() -> None:
    record = _record("Tenant report written")
    record.step = "tenants"
    record.phase = "complete"
    record.tenant = "alpha"
    record.duration_ms = 12

    line = PlainFormatter().format(record)

    assert "[tenants:complete] Tenant report written tenant=alpha (duration_ms=12)" in line


def test_add_run_log_file_writes(tmp_path) -> None:
    if getattr(setup_logging, "_configured", False):
        setattr(setup_logging, "_configured", False)
    setup_logging(LogConfig(level="INFO", json_logs=False))

    log_path = tmp_path / "debug.log"
    add_run_log_file(log_path)
    add_run_log_file(log_path)

    logger = logging.getLogger("unit.test")
    logger.info("file log test")

    content = log_path.read_text(encoding="utf-8")
    assert content.count("file log test") == 1
