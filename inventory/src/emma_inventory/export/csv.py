from __future__ import annotations

import csv
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from ..logging import get_logger
from ..normalize.flatten import FlatRow, flatten_record
from ..util.errors import ExportError
from .headers import HeaderSet

LOG = get_logger(__name__)

PROJECT_NAME_COLUMN = "projectName"


@dataclass(frozen=True)
class TenantReportFile:
    """A per-tenant CSV written by write_tenant_csv and consumed by the merger."""

    path: Path
    tenant: Optional[str]
    row_count: int
    headers: List[str] = field(default_factory=list)


def open_csv_writer(f: Any) -> Any:
    return csv.writer(f, lineterminator="\r\n")


def write_tenant_csv(
    path: Path,
    records: Iterable[Any],
    *,
    extra_columns: Optional[Mapping[str, str]] = None,
    tenant: Optional[str] = None,
) -> TenantReportFile:
    """
    Flatten one tenant's records and write them as CSV.

    Headers are the union of flattened keys in first-seen order, followed by
    `extra_columns` (constant value per row, e.g. the project name). Cells for
    keys a record does not carry are left empty. A batch that yields no column
    at all (only empty objects and lists, no extras) raises ExportError.
    """
    rows: List[FlatRow] = [flatten_record(rec) for rec in records]
    if not rows:
        raise ValueError("write_tenant_csv requires at least one record; skip empty tenants")

    headers = HeaderSet()
    for row in rows:
        headers.extend(row.keys())
    extras = dict(extra_columns or {})
    headers.extend(extras.keys())
    columns = headers.as_list()
    if not columns:
        # the merge needs a header row to find any data row
        raise ExportError(f"Records for {tenant or path} flatten to no columns; nothing to write")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = open_csv_writer(f)
            writer.writerow(columns)
            for row in rows:
                writer.writerow([extras[c] if c in extras else row.get(c, "") for c in columns])
    except OSError as e:
        with suppress(OSError):
            path.unlink(missing_ok=True)
        raise ExportError(f"Could not write tenant report {path}: {e}") from e

    LOG.debug(
        "Tenant report written",
        extra={"path": str(path), "tenant": tenant, "rows": len(rows), "columns": len(columns)},
    )
    return TenantReportFile(path=path, tenant=tenant, row_count=len(rows), headers=columns)
