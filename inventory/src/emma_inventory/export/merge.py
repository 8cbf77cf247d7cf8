from __future__ import annotations

import csv
import os
import warnings
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from ..logging import get_logger
from ..util.errors import ConfigError, ExportError, PartialDataWarning
from .csv import open_csv_writer
from .headers import HeaderSet

LOG = get_logger(__name__)

PathLike = Union[str, Path]


@dataclass
class HeaderReconciliation:
    index_by_file: Dict[Path, Dict[str, int]] = field(default_factory=dict)
    headers: HeaderSet = field(default_factory=HeaderSet)
    skipped: List[Path] = field(default_factory=list)


@dataclass(frozen=True)
class CombinedReport:
    path: Path
    headers: List[str]
    row_count: int
    sources: List[Path]
    cleanup_errors: List[str] = field(default_factory=list)


def read_header_row(path: Path) -> Optional[List[str]]:
    with path.open("r", encoding="utf-8", newline="") as f:
        return next(csv.reader(f), None)


def _skip(recon: HeaderReconciliation, path: Path, reason: str) -> None:
    recon.skipped.append(path)
    LOG.warning("Skipping unreadable tenant report", extra={"path": str(path), "reason": reason})
    warnings.warn(f"Skipping tenant report {path}: {reason}", PartialDataWarning, stacklevel=3)


def collect_headers(paths: Sequence[PathLike]) -> HeaderReconciliation:
    """
    Read the header row of every file and build the global column union.

    The union keeps first-appearance order across files (in the order given)
    and within each file. Files that are missing, unreadable or empty are
    skipped with a PartialDataWarning instead of aborting reconciliation.
    """
    recon = HeaderReconciliation()
    for raw in paths:
        path = Path(raw)
        try:
            header = read_header_row(path)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            _skip(recon, path, str(e))
            continue
        if not header:
            _skip(recon, path, "no header row")
            continue
        index: Dict[str, int] = {}
        for position, name in enumerate(header):
            index.setdefault(name, position)
        recon.index_by_file[path] = index
        recon.headers.extend(header)
    return recon


def _transcribe(writer: Any, path: Path, columns: List[str], index: Dict[str, int]) -> int:
    positions = [index.get(column) for column in columns]
    count = 0
    try:
        with path.open("r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            next(reader, None)
            for row in reader:
                if not row:
                    continue
                writer.writerow(
                    [row[pos] if pos is not None and pos < len(row) else "" for pos in positions]
                )
                count += 1
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ExportError(f"Could not read tenant report {path}: {e}") from e
    return count


def _partial_path(output_path: Path) -> Path:
    return output_path.with_name(f".{output_path.name}.partial")


def _unique_sources(paths: Sequence[PathLike]) -> List[Path]:
    seen: Set[Path] = set()
    sources: List[Path] = []
    for raw in paths:
        path = Path(raw)
        key = path.resolve()
        if key in seen:
            continue
        seen.add(key)
        sources.append(path)
    return sources


def merge_csv_files(paths: Sequence[PathLike], output_path: PathLike) -> CombinedReport:
    """
    Union-merge per-tenant CSV files into one report at output_path.

    Every data row is re-projected onto the union header; columns a file
    lacks (or short rows) yield empty cells. The report only appears at
    output_path once all inputs were transcribed; the inputs are then
    removed. Removal failures are logged and returned, never raised.

    A path given twice is merged once. The output may not be one of the
    inputs, and at least one input must carry a header row.
    """
    sources = _unique_sources(paths)
    output = Path(output_path)
    if output.resolve() in {p.resolve() for p in sources}:
        raise ConfigError(f"Combined report {output} is also one of the merge inputs")

    recon = collect_headers(sources)
    columns = recon.headers.as_list()
    if not columns:
        raise ExportError("No tenant report with a header row to merge")
    partial = _partial_path(output)

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        out_f = partial.open("w", encoding="utf-8", newline="")
    except OSError as e:
        raise ExportError(f"Could not create combined report {output}: {e}") from e

    row_count = 0
    try:
        with out_f:
            writer = open_csv_writer(out_f)
            writer.writerow(columns)
            for path in sources:
                row_count += _transcribe(writer, path, columns, recon.index_by_file.get(path, {}))
        os.replace(partial, output)
    except OSError as e:
        with suppress(OSError):
            partial.unlink(missing_ok=True)
        raise ExportError(f"Could not write combined report {output}: {e}") from e
    except ExportError:
        with suppress(OSError):
            partial.unlink(missing_ok=True)
        raise

    cleanup_errors: List[str] = []
    for path in sources:
        try:
            path.unlink()
        except OSError as e:
            cleanup_errors.append(f"{path}: {e}")
            LOG.warning("Could not remove tenant report", extra={"path": str(path), "error": str(e)})

    LOG.info(
        "Combined report written",
        extra={"path": str(output), "rows": row_count, "columns": len(columns), "sources": len(sources)},
    )
    return CombinedReport(
        path=output,
        headers=columns,
        row_count=row_count,
        sources=sources,
        cleanup_errors=cleanup_errors,
    )
