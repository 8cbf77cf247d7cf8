from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .auth.token import extract_tenant_identity
from .config import RunConfig, dump_config, load_run_config
from .emma.client import EmmaClient
from .emma.source import make_fetcher
from .export.csv import PROJECT_NAME_COLUMN, write_tenant_csv
from .export.merge import merge_csv_files
from .export.reports import DOWNLOAD_CONTENT_TYPE, content_disposition, list_reports, resolve_report
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .pipeline import generate_report
from .util.errors import ConfigError, ExitCode, InventoryError, as_exit_code
from .util.rich_progress import RunProgress, render_run_summary_table

LOG = get_logger(__name__)


def _iter_records_file(path: Path) -> Iterable[Any]:
    """
    Records from a JSON array/object file or a JSONL file (one value per line).
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Could not read records file {path}: {e}") from e
    if path.suffix.lower() == ".jsonl":
        for lineno, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except ValueError as e:
                raise ConfigError(f"{path}:{lineno}: invalid JSON: {e}") from e
        return
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ConfigError(f"{path}: invalid JSON: {e}") from e
    if isinstance(data, list):
        yield from data
    else:
        yield data


def _client(cfg: RunConfig) -> EmmaClient:
    return EmmaClient(cfg.api_base_url, timeout=cfg.request_timeout)


def _require_credentials(cfg: RunConfig) -> None:
    if not cfg.credentials:
        raise ConfigError("No credentials configured; set CREDENTIALS or 'credentials' in the config file")


def cmd_generate(cfg: RunConfig) -> int:
    _require_credentials(cfg)
    LOG.debug("Effective configuration", extra={"config": dump_config(cfg)})
    with _client(cfg) as client, RunProgress(enabled=cfg.progress) as progress:
        result = generate_report(
            cfg.credentials,
            make_fetcher(client),
            temp_dir=cfg.temp_dir,
            reports_dir=cfg.reports_dir,
            workers=cfg.workers_fetch,
            isolate_failures=cfg.isolate_tenant_failures,
            progress=progress,
        )

    tenants = result.tenants
    render_run_summary_table(
        enabled=cfg.progress,
        status=result.status,
        tenants=[f.tenant or f.path.name for f in tenants.files],
        empty_tenants=tenants.empty_tenants,
        failed_tenants=[f.tenant for f in tenants.failed_tenants],
        rows=result.report.row_count if result.report else 0,
        columns=len(result.report.headers) if result.report else 0,
        report=str(result.report.path) if result.report else "-",
    )
    if result.report is None:
        print("No VM records found for the configured tenants; no report written.")
        return 0
    print(result.report.path)
    return 0


def cmd_merge(cfg: RunConfig) -> int:
    if cfg.output is None:
        raise ConfigError("merge requires --output")
    report = merge_csv_files(cfg.inputs, cfg.output)
    print(report.path)
    return 0


def cmd_flatten(cfg: RunConfig) -> int:
    if cfg.output is None or not cfg.inputs:
        raise ConfigError("flatten requires an input file and --output")
    records: List[Any] = list(_iter_records_file(cfg.inputs[0]))
    if not records:
        print(f"No records in {cfg.inputs[0]}; no CSV written.")
        return 0
    extra = {PROJECT_NAME_COLUMN: cfg.project_name} if cfg.project_name else None
    written = write_tenant_csv(cfg.output, records, extra_columns=extra, tenant=cfg.project_name)
    LOG.info("Records flattened", extra={"rows": written.row_count, "columns": len(written.headers)})
    print(written.path)
    return 0


def cmd_list_reports(cfg: RunConfig) -> int:
    for name in list_reports(cfg.reports_dir):
        print(name)
    return 0


def cmd_locate_report(cfg: RunConfig) -> int:
    if not cfg.report:
        raise ConfigError("locate-report requires --report")
    path = resolve_report(cfg.reports_dir, cfg.report)
    payload: Dict[str, str] = {
        "path": str(path),
        "contentType": DOWNLOAD_CONTENT_TYPE,
        "contentDisposition": content_disposition(path.name),
    }
    print(json.dumps(payload, sort_keys=True))
    return 0


def cmd_validate_auth(cfg: RunConfig) -> int:
    _require_credentials(cfg)
    failures = 0
    with _client(cfg) as client:
        for cred in cfg.credentials:
            try:
                identity = extract_tenant_identity(client.issue_token(cred), project_name=cred.project_name)
            except InventoryError as e:
                failures += 1
                LOG.error("Credential validation failed", extra={"tenant": cred.project_name, "error": str(e)})
                print(f"FAIL: {cred.project_name}: {e}")
                continue
            # No secrets: only the ids carried in the token
            print(f"OK: {cred.project_name}: company={identity.company_id} project={identity.project_id}")
    return 0 if failures == 0 else int(ExitCode.AUTH_ERROR)


COMMANDS = {
    "generate": cmd_generate,
    "merge": cmd_merge,
    "flatten": cmd_flatten,
    "list-reports": cmd_list_reports,
    "locate-report": cmd_locate_report,
    "validate-auth": cmd_validate_auth,
}


def main(argv: List[str] | None = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))
        if cfg.log_file is not None:
            add_run_log_file(cfg.log_file)

        handler = COMMANDS.get(command)
        if handler is None:
            raise ConfigError(f"Unknown command: {command}")
        sys.exit(handler(cfg))
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        # Map to consistent exit code and log
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
