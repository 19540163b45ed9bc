"""Exception taxonomy for reconciliation runs.

Business outcomes (minor/major differences, a failed overall status) are
results, not errors; nothing here is raised for them.
"""
from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for conditions that prevent a reconciliation from running."""


class SnapshotAcquisitionError(ReconciliationError):
    """A snapshot could not be obtained or normalized from its source."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class DuplicateSecurityError(ReconciliationError, ValueError):
    """A snapshot lists the same security identifier more than once."""

    def __init__(self, side: str, security_ids: list[str]) -> None:
        joined = ", ".join(security_ids)
        super().__init__(f"{side} snapshot repeats security identifiers: {joined}")
        self.side = side
        self.security_ids = security_ids


class ConfigurationError(ReconciliationError, ValueError):
    """Invalid threshold configuration."""
