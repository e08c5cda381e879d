"""
Exception taxonomy for the rule configuration and scoring subsystem.

Mutation errors are raised synchronously before any state changes; external
failures are converted to "absent" by the callers that consume them.
"""

from __future__ import annotations


class RegionFitError(Exception):
    """Base exception for all RegionFit errors."""

    pass


class ValidationError(RegionFitError):
    """Input rejected before any mutation (missing id/name, bad category, bad split)."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(RegionFitError):
    """Operation targeted an unknown rule, version or experiment."""

    def __init__(self, message: str, entity_id: str | None = None):
        super().__init__(message)
        self.entity_id = entity_id


class ConfigurationConflictError(RegionFitError):
    """Experiment configuration conflicts with existing state."""

    pass


class ExternalUnavailableError(RegionFitError):
    """Advisory score provider failed or timed out."""

    pass


class StorageError(RegionFitError):
    """Persistence backend failed or exceeded its timeout."""

    pass
