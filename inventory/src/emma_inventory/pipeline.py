from __future__ import annotations

import logging
import re
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from .auth.credentials import Credential
from .auth.token import TenantIdentity
from .emma.source import TenantBatch, TenantFetcher
from .export.csv import PROJECT_NAME_COLUMN, TenantReportFile, write_tenant_csv
from .export.merge import CombinedReport, merge_csv_files
from .logging import get_logger
from .util.concurrency import parallel_map_ordered
from .util.errors import InventoryError
from .util.rich_progress import RunProgress
from .util.time import filename_timestamp

LOG = get_logger(__name__)

TENANT_FILE_PREFIX = "temp_report"
REPORT_FILE_PREFIX = "vm-report"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


@dataclass(frozen=True)
class TenantFailure:
    tenant: str
    error: str


TenantOutcome = Union[TenantBatch, TenantFailure]


@dataclass
class TenantWriteResult:
    files: List[TenantReportFile] = field(default_factory=list)
    empty_tenants: List[str] = field(default_factory=list)
    failed_tenants: List[TenantFailure] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return sum(f.row_count for f in self.files)


@dataclass
class GenerateResult:
    report: Optional[CombinedReport]
    tenants: TenantWriteResult

    @property
    def status(self) -> str:
        if self.tenants.failed_tenants:
            return "PARTIAL"
        if self.report is None:
            return "EMPTY"
        return "OK"


def _safe_part(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("-", value).strip("-") or "unknown"


def tenant_filename(identity: TenantIdentity, now: Optional[datetime] = None) -> str:
    return (
        f"{TENANT_FILE_PREFIX}_{_safe_part(identity.company_id)}_{_safe_part(identity.project_id)}"
        f"_{filename_timestamp(now)}.csv"
    )


def report_filename(now: Optional[datetime] = None) -> str:
    return f"{REPORT_FILE_PREFIX}_{filename_timestamp(now)}.csv"


def _unique_path(directory: Path, name: str, taken: Set[Path]) -> Path:
    candidate = directory / name
    stem, suffix = candidate.stem, candidate.suffix
    n = 1
    while candidate in taken or candidate.exists():
        candidate = directory / f"{stem}_{n}{suffix}"
        n += 1
    taken.add(candidate)
    return candidate


def write_tenant_report(
    batch: TenantBatch,
    temp_dir: Path,
    *,
    now: Optional[datetime] = None,
    taken: Optional[Set[Path]] = None,
) -> Optional[TenantReportFile]:
    """
    Write one tenant's CSV into temp_dir. Tenants without VMs produce no file.
    """
    if not batch.records:
        return None
    path = _unique_path(temp_dir, tenant_filename(batch.tenant, now), taken if taken is not None else set())
    return write_tenant_csv(
        path,
        batch.records,
        extra_columns={PROJECT_NAME_COLUMN: batch.tenant.project_name},
        tenant=batch.tenant.label,
    )


def discard_tenant_reports(files: Iterable[TenantReportFile]) -> None:
    for f in files:
        with suppress(OSError):
            f.path.unlink(missing_ok=True)


def write_tenant_reports(
    batches: Iterable[TenantOutcome],
    temp_dir: Path,
    *,
    isolate_failures: bool = False,
    now: Optional[datetime] = None,
    progress: Optional[RunProgress] = None,
) -> TenantWriteResult:
    """
    Sequentially write one CSV per non-empty tenant batch.

    TenantFailure items (tenants whose fetch already failed) are recorded as
    they arrive. With isolate_failures a failing write is recorded too and the
    loop goes on; otherwise the files already written are removed and the
    error propagates. Errors raised while pulling the next batch from a lazy
    iterable are handled the same way.
    """
    result = TenantWriteResult()
    taken: Set[Path] = set()
    try:
        for item in batches:
            if isinstance(item, TenantFailure):
                _record_failure(result, item, progress)
                continue
            try:
                _record_batch(result, item, temp_dir, now=now, taken=taken, progress=progress)
            except InventoryError as e:
                if not isolate_failures:
                    raise
                _record_failure(result, TenantFailure(tenant=item.tenant.label, error=str(e)), progress)
    except BaseException:
        discard_tenant_reports(result.files)
        raise
    return result


def _record_failure(result: TenantWriteResult, failure: TenantFailure, progress: Optional[RunProgress]) -> None:
    result.failed_tenants.append(failure)
    LOG.error("Tenant failed; continuing", extra={"tenant": failure.tenant, "error": failure.error})
    if progress is not None:
        progress.advance_tenant(failure.tenant)


def _record_batch(
    result: TenantWriteResult,
    batch: TenantBatch,
    temp_dir: Path,
    *,
    now: Optional[datetime],
    taken: Set[Path],
    progress: Optional[RunProgress],
) -> None:
    label = batch.tenant.label
    written = write_tenant_report(batch, temp_dir, now=now, taken=taken)
    if written is None:
        result.empty_tenants.append(label)
        LOG.info("Tenant has no VMs; skipped", extra={"tenant": label})
    else:
        result.files.append(written)
        LOG.info("Tenant report written", extra={"tenant": label, "rows": written.row_count})
    if progress is not None:
        progress.advance_tenant(label, rows=written.row_count if written else 0)


def collect_tenant_reports(
    credentials: Sequence[Credential],
    fetch: TenantFetcher,
    temp_dir: Path,
    *,
    workers: int = 1,
    isolate_failures: bool = False,
    now: Optional[datetime] = None,
    progress: Optional[RunProgress] = None,
) -> TenantWriteResult:
    """
    Fetch every tenant (optionally in parallel) and write its CSV.

    With isolate_failures, a tenant whose fetch or write fails is recorded in
    failed_tenants and the rest continue; otherwise the first failure aborts
    the run and removes any files already written.
    """

    def _fetch(credential: Credential) -> TenantOutcome:
        try:
            return fetch(credential)
        except InventoryError as e:
            if not isolate_failures:
                raise
            return TenantFailure(tenant=credential.project_name, error=str(e))

    if progress is not None:
        progress.start_tenants(len(credentials))
    if workers > 1:
        outcomes: Iterable[TenantOutcome] = parallel_map_ordered(_fetch, credentials, workers)
    else:
        # one tenant at a time: fetch, then write, then the next
        outcomes = (_fetch(c) for c in credentials)
    return write_tenant_reports(
        outcomes,
        temp_dir,
        isolate_failures=isolate_failures,
        now=now,
        progress=progress,
    )


def merge_tenant_reports(
    files: Sequence[TenantReportFile],
    reports_dir: Path,
    *,
    now: Optional[datetime] = None,
) -> CombinedReport:
    output = _unique_path(reports_dir, report_filename(now), set())
    return merge_csv_files([f.path for f in files], output)


def generate_report(
    credentials: Sequence[Credential],
    fetch: TenantFetcher,
    *,
    temp_dir: Path,
    reports_dir: Path,
    workers: int = 1,
    isolate_failures: bool = False,
    now: Optional[datetime] = None,
    progress: Optional[RunProgress] = None,
) -> GenerateResult:
    """
    Fetch, write and merge all tenants into one combined report.
    The merge starts only after every tenant has been written.
    """
    now = now or datetime.now(timezone.utc)
    timers = _StepTimers()

    _log_event(
        LOG,
        logging.INFO,
        "Tenant collection started",
        step="tenants",
        phase="start",
        timers=timers,
        tenant_count=len(credentials),
        workers=workers,
    )
    try:
        tenants = collect_tenant_reports(
            credentials,
            fetch,
            temp_dir,
            workers=workers,
            isolate_failures=isolate_failures,
            now=now,
            progress=progress,
        )
    except InventoryError as e:
        _log_event(LOG, logging.ERROR, "Tenant collection failed", step="tenants", phase="error", timers=timers, error=str(e))
        raise
    _log_event(
        LOG,
        logging.INFO,
        "Tenant collection complete",
        step="tenants",
        phase="complete",
        timers=timers,
        files=len(tenants.files),
        empty=len(tenants.empty_tenants),
        failed=len(tenants.failed_tenants),
    )

    if not tenants.files:
        _log_event(LOG, logging.WARNING, "No tenant produced VM records", step="merge", phase="skipped")
        return GenerateResult(report=None, tenants=tenants)

    if progress is not None:
        progress.start_merge()
    _log_event(LOG, logging.INFO, "Merge started", step="merge", phase="start", timers=timers, files=len(tenants.files))
    try:
        report = merge_tenant_reports(tenants.files, reports_dir, now=now)
    except InventoryError as e:
        _log_event(LOG, logging.ERROR, "Merge failed", step="merge", phase="error", timers=timers, error=str(e))
        raise
    _log_event(
        LOG,
        logging.INFO,
        "Merge complete",
        step="merge",
        phase="complete",
        timers=timers,
        report=str(report.path),
        rows=report.row_count,
    )
    return GenerateResult(report=report, tenants=tenants)
