from __future__ import annotations

from pathlib import Path, PurePath
from typing import List

from ..util.errors import ConfigError, ExportError

REPORT_SUFFIX = ".csv"
DOWNLOAD_CONTENT_TYPE = "text/csv"


def list_reports(reports_dir: Path) -> List[str]:
    """Names of the CSV reports in reports_dir, sorted. A missing directory has none."""
    if not reports_dir.is_dir():
        return []
    return sorted(
        p.name for p in reports_dir.iterdir() if p.is_file() and p.name.endswith(REPORT_SUFFIX)
    )


def resolve_report(reports_dir: Path, name: str) -> Path:
    """
    Map a report name (as returned by list_reports) to its path for download.
    Names carrying directory components are rejected.
    """
    if not name or PurePath(name).name != name or name in {".", ".."} or "\\" in name:
        raise ConfigError(f"invalid report name: {name!r}")
    path = reports_dir / name
    if not path.exists():
        raise ExportError(f"report not found: {name}")
    if not path.is_file():
        raise ExportError(f"invalid report: {name}")
    return path


def content_disposition(name: str) -> str:
    return f'attachment; filename="{name}"'
