from __future__ import annotations

import pytest

from emma_inventory.export.reports import content_disposition, list_reports, resolve_report
from emma_inventory.util.errors import ConfigError, ExportError


def test_list_reports_missing_dir(tmp_path) -> None:
    assert list_reports(tmp_path / "nope") == []


def test_list_reports_only_csv_files(tmp_path) -> None:
    (tmp_path / "b.csv").write_text("", encoding="utf-8")
    (tmp_path / "a.csv").write_text("", encoding="utf-8")
    (tmp_path / "dir.csv").mkdir()
    (tmp_path / "c.txt").write_text("", encoding="utf-8")
    assert list_reports(tmp_path) == ["a.csv", "b.csv"]


@pytest.mark.parametrize("name", ["", "..", "../a.csv", "sub/a.csv", "sub\\a.csv"])
def test_resolve_report_rejects_paths(tmp_path, name) -> None:
    with pytest.raises(ConfigError):
        resolve_report(tmp_path, name)


def test_resolve_report_missing_and_directory(tmp_path) -> None:
    (tmp_path / "dir.csv").mkdir()
    with pytest.raises(ExportError):
        resolve_report(tmp_path, "missing.csv")
    with pytest.raises(ExportError):
        resolve_report(tmp_path, "dir.csv")


def test_resolve_report_ok(tmp_path) -> None:
    (tmp_path / "r.csv").write_text("a\r\n", encoding="utf-8")
    assert resolve_report(tmp_path, "r.csv") == tmp_path / "r.csv"
    assert content_disposition("r.csv") == 'attachment; filename="r.csv"'
