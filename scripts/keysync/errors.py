"""Exception hierarchy for the key sync pipeline."""

from __future__ import annotations


class KeySyncError(RuntimeError):
    """Base error for a run that cannot continue."""


class ConfigError(KeySyncError, ValueError):
    """Raised for missing or invalid configuration, before any network call."""


class InventoryUnavailable(KeySyncError):
    """Raised when the orchestrator cannot produce a workload list."""


class TemplateRenderError(KeySyncError):
    """Raised when the password template is missing or fails to render."""
