from __future__ import annotations

from typing import Any, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table


class RunProgress:
    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._tenant_task: Optional[int] = None
        self._rows = 0
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[detail]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_tenants(self, total: int) -> None:
        if not self._enabled or not self._progress:
            return
        self._rows = 0
        self._tenant_task = self._progress.add_task("Tenants", total=total, detail="")

    def advance_tenant(self, tenant: str, *, rows: int = 0) -> None:
        if not self._enabled or not self._progress or self._tenant_task is None:
            return
        self._rows += rows
        self._progress.update(self._tenant_task, advance=1, detail=f"{tenant} (rows={self._rows})")

    def start_merge(self) -> None:
        if not self._enabled or not self._progress or self._tenant_task is None:
            return
        self._progress.update(self._tenant_task, description="Merge", detail="")


def render_run_summary_table(
    *,
    enabled: bool,
    status: str,
    tenants: Sequence[str],
    empty_tenants: Sequence[str],
    failed_tenants: Sequence[str],
    rows: int,
    columns: int,
    report: str,
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Report Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Tenants reported", ", ".join(tenants))
    table.add_row("Tenants without VMs", ", ".join(empty_tenants))
    table.add_row("Tenants failed", ", ".join(failed_tenants))
    table.add_row("Rows", str(rows))
    table.add_row("Columns", str(columns))
    table.add_row("Report", report)
    (console or Console(stderr=True)).print(table)
