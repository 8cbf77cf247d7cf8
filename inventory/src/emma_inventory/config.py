from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .auth.credentials import Credential, parse_credentials
from .emma.client import DEFAULT_API_BASE_URL, DEFAULT_TIMEOUT_SECONDS
from .util.serialization import sanitize_for_json
from .util.time import utc_now_iso

# --------
# Defaults
# --------
DEFAULT_REPORTS_DIR = "reports"
DEFAULT_TEMP_DIR = "temp-reports"
DEFAULT_WORKERS_FETCH = 1
CREDENTIALS_ENV = "CREDENTIALS"
ALLOWED_CONFIG_KEYS = {
    "reports_dir",
    "temp_dir",
    "api_base_url",
    "request_timeout",
    "workers_fetch",
    "isolate_tenant_failures",
    "progress",
    "json_logs",
    "log_level",
    "log_file",
    "credentials",
}
BOOL_CONFIG_KEYS = {"isolate_tenant_failures", "progress", "json_logs"}
INT_CONFIG_KEYS = {"workers_fetch"}
FLOAT_CONFIG_KEYS = {"request_timeout"}
PATH_CONFIG_KEYS = {"reports_dir", "temp_dir", "log_file"}
STR_CONFIG_KEYS = {"api_base_url", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # Storage
    reports_dir: Path = Path(DEFAULT_REPORTS_DIR)
    temp_dir: Path = Path(DEFAULT_TEMP_DIR)

    # API
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS
    credentials: List[Credential] = field(default_factory=list, repr=False)

    # Behaviour
    workers_fetch: int = DEFAULT_WORKERS_FETCH
    isolate_tenant_failures: bool = False
    progress: bool = True
    json_logs: bool = False
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Command specific
    inputs: List[Path] = field(default_factory=list)
    output: Optional[Path] = None
    report: Optional[str] = None
    project_name: Optional[str] = None

    # Internal/derived
    started_at: str = field(default_factory=utc_now_iso)


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, ValueError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be a number")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
            continue
        if key == "credentials":
            normalized[key] = parse_credentials(value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in FLOAT_CONFIG_KEYS:
            normalized[key] = _coerce_float(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _env_credentials() -> Optional[List[Credential]]:
    raw = _env_str(CREDENTIALS_ENV)
    if raw is None:
        return None
    return parse_credentials(raw)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="emma-inv", description="Emma VM inventory CSV reports")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # common flags builder
    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")

    def add_api(p: argparse.ArgumentParser) -> None:
        p.add_argument("--api-base-url", default=None, help=f"Emma API base URL (default {DEFAULT_API_BASE_URL})")
        p.add_argument(
            "--request-timeout",
            type=float,
            default=None,
            help=f"HTTP timeout in seconds (default {DEFAULT_TIMEOUT_SECONDS:g})",
        )

    # generate
    p_gen = subparsers.add_parser("generate", help="Fetch VMs for every tenant and write a combined CSV report")
    add_common(p_gen)
    add_api(p_gen)
    p_gen.add_argument("--reports-dir", type=Path, default=None, help=f"Report directory (default {DEFAULT_REPORTS_DIR})")
    p_gen.add_argument("--temp-dir", type=Path, default=None, help=f"Per-tenant CSV directory (default {DEFAULT_TEMP_DIR})")
    p_gen.add_argument(
        "--workers-fetch",
        type=int,
        default=None,
        help=f"Tenants fetched in parallel (default {DEFAULT_WORKERS_FETCH})",
    )
    p_gen.add_argument(
        "--isolate-tenant-failures",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep going when one tenant fails and write a partial report",
    )
    p_gen.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress bar and summary table",
    )

    # merge
    p_merge = subparsers.add_parser("merge", help="Union-merge tenant CSV files into one report")
    add_common(p_merge)
    p_merge.add_argument("inputs", nargs="+", type=Path, help="Tenant CSV files (consumed)")
    p_merge.add_argument("--output", type=Path, required=True, help="Combined CSV path")

    # flatten
    p_flat = subparsers.add_parser("flatten", help="Flatten a JSON array or JSONL file of records into CSV")
    add_common(p_flat)
    p_flat.add_argument("inputs", nargs=1, type=Path, help="Records file (.json or .jsonl)")
    p_flat.add_argument("--output", type=Path, required=True, help="CSV path")
    p_flat.add_argument("--project-name", default=None, help="Append a constant projectName column")

    # list-reports
    p_list = subparsers.add_parser("list-reports", help="List generated CSV reports")
    add_common(p_list)
    p_list.add_argument("--reports-dir", type=Path, default=None, help=f"Report directory (default {DEFAULT_REPORTS_DIR})")

    # locate-report
    p_loc = subparsers.add_parser("locate-report", help="Print the path of a report for download")
    add_common(p_loc)
    p_loc.add_argument("--reports-dir", type=Path, default=None, help=f"Report directory (default {DEFAULT_REPORTS_DIR})")
    p_loc.add_argument("--report", required=True, help="Report file name as shown by list-reports")

    # validate-auth
    p_val = subparsers.add_parser("validate-auth", help="Issue a token for every credential and show its tenant")
    add_common(p_val)
    add_api(p_val)

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is the selected subcommand.
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    # defaults
    base: Dict[str, Any] = {
        "reports_dir": DEFAULT_REPORTS_DIR,
        "temp_dir": DEFAULT_TEMP_DIR,
        "api_base_url": DEFAULT_API_BASE_URL,
        "request_timeout": DEFAULT_TIMEOUT_SECONDS,
        "workers_fetch": DEFAULT_WORKERS_FETCH,
        "isolate_tenant_failures": False,
        "progress": True,
        "json_logs": False,
        "log_level": "INFO",
        "log_file": None,
        "credentials": [],
    }

    # config file
    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    # env
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "reports_dir": _env_str("EMMA_INV_REPORTS_DIR"),
            "temp_dir": _env_str("EMMA_INV_TEMP_DIR"),
            "api_base_url": _env_str("EMMA_INV_API_BASE_URL"),
            "request_timeout": _env_float("EMMA_INV_REQUEST_TIMEOUT"),
            "workers_fetch": _env_int("EMMA_INV_WORKERS_FETCH"),
            "isolate_tenant_failures": _env_bool("EMMA_INV_ISOLATE_TENANT_FAILURES"),
            "progress": _env_bool("EMMA_INV_PROGRESS"),
            "json_logs": _env_bool("EMMA_INV_JSON_LOGS"),
            "log_level": _env_str("EMMA_INV_LOG_LEVEL"),
            "log_file": _env_str("EMMA_INV_LOG_FILE"),
            "credentials": _env_credentials(),
        }
    )

    # CLI
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "reports_dir": getattr(ns, "reports_dir", None),
            "temp_dir": getattr(ns, "temp_dir", None),
            "api_base_url": getattr(ns, "api_base_url", None),
            "request_timeout": getattr(ns, "request_timeout", None),
            "workers_fetch": getattr(ns, "workers_fetch", None),
            "isolate_tenant_failures": getattr(ns, "isolate_tenant_failures", None),
            "progress": getattr(ns, "progress", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "log_file": getattr(ns, "log_file", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    raw_workers = merged["workers_fetch"]
    workers_fetch = DEFAULT_WORKERS_FETCH if raw_workers is None else int(raw_workers)
    if workers_fetch < 1:
        raise ValueError("workers_fetch must be >= 1")
    request_timeout = float(merged["request_timeout"])
    if request_timeout <= 0:
        raise ValueError("request_timeout must be > 0")

    cfg = RunConfig(
        reports_dir=Path(merged["reports_dir"]),
        temp_dir=Path(merged["temp_dir"]),
        api_base_url=str(merged["api_base_url"]),
        request_timeout=request_timeout,
        credentials=list(merged["credentials"]),
        workers_fetch=workers_fetch,
        isolate_tenant_failures=bool(merged["isolate_tenant_failures"]),
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged["log_level"] or "INFO").upper(),
        log_file=Path(merged["log_file"]) if merged.get("log_file") else None,
        inputs=[Path(p) for p in (getattr(ns, "inputs", None) or [])],
        output=getattr(ns, "output", None),
        report=getattr(ns, "report", None),
        project_name=getattr(ns, "project_name", None),
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return sanitize_for_json(
        {
            "reports_dir": str(cfg.reports_dir),
            "temp_dir": str(cfg.temp_dir),
            "api_base_url": cfg.api_base_url,
            "request_timeout": cfg.request_timeout,
            "credentials": [c.to_dict() for c in cfg.credentials],
            "workers_fetch": cfg.workers_fetch,
            "isolate_tenant_failures": cfg.isolate_tenant_failures,
            "progress": cfg.progress,
            "json_logs": cfg.json_logs,
            "log_level": cfg.log_level,
            "log_file": str(cfg.log_file) if cfg.log_file else None,
            "started_at": cfg.started_at,
        }
    )
