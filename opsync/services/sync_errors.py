"""Error taxonomy for the sync scheduler.

Component entry points catch these and return ``{"success": False, ...}``
dicts via :func:`error_result`; routes map ``error_type`` to an HTTP status.
"""

from typing import Any, Dict


class SyncError(Exception):
    """Base class for scheduler errors."""

    error_type = "sync_error"
    http_status = 500


class ConfigError(SyncError):
    """Sync configuration row is missing or unreadable."""

    error_type = "config_error"
    http_status = 503


class InputError(SyncError):
    """Caller supplied an invalid range or endpoint list."""

    error_type = "input_error"
    http_status = 400


class ProviderError(SyncError):
    """A provider call failed (network, auth, rate limit, bad response)."""

    error_type = "provider_error"
    http_status = 502

    def __init__(self, message: str, endpoint: str = None):
        super().__init__(message)
        self.endpoint = endpoint


class SupersededError(SyncError):
    """The record being worked on was superseded by a newer backfill."""

    error_type = "superseded"
    http_status = 409


HTTP_STATUS_BY_ERROR_TYPE = {
    cls.error_type: cls.http_status
    for cls in (SyncError, ConfigError, InputError, ProviderError, SupersededError)
}


def error_result(error: Exception, **extra: Any) -> Dict[str, Any]:
    """Structured failure result for a component boundary."""
    error_type = getattr(error, "error_type", "internal_error")
    return {"success": False, "error": str(error), "error_type": error_type, **extra}


def http_status_for(result: Dict[str, Any], success_status: int = 200) -> int:
    if result.get("success"):
        return success_status
    return HTTP_STATUS_BY_ERROR_TYPE.get(result.get("error_type"), 500)
