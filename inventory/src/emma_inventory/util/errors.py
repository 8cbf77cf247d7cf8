from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    AUTH_ERROR = 3
    API_ERROR = 4
    RUNTIME_ERROR = 5


class InventoryError(Exception):
    """Base error for inventory pipeline."""


class ConfigError(InventoryError):
    """Raised for configuration or argument issues."""


class AuthResolutionError(InventoryError):
    """Raised when a tenant credential cannot be turned into a usable identity."""


class ApiClientError(InventoryError):
    """Raised when Emma API calls fail in a non-retriable way."""


class ExportError(InventoryError):
    """Raised when creating, reading or writing report files fails."""


class EncodingError(ExportError):
    """Raised when a record value has no CSV text representation."""


class PartialDataWarning(UserWarning):
    """Issued when a tenant report is skipped during header reconciliation."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, AuthResolutionError):
        return int(ExitCode.AUTH_ERROR)
    if isinstance(exc, ApiClientError):
        return int(ExitCode.API_ERROR)
    if isinstance(exc, (ExportError, InventoryError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
