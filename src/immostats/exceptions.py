"""
Exception hierarchy for the ingestion and statistics core.

Only FetchError, PersistenceConflict and AlreadyRunning ever cross a component
boundary; NormalizationReject stays inside the normalizer.
"""
from typing import Any, Optional


class ImmostatsError(Exception):
    """Base exception for all immostats errors."""


class FetchError(ImmostatsError):
    """Raised when the network call for one partition/period fails."""

    def __init__(self, partition_key: str, period: Any, cause: Optional[BaseException] = None):
        self.partition_key = partition_key
        self.period = period
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Fetch failed for partition={partition_key} period={period}{detail}")


class NormalizationReject(ImmostatsError):
    """Raised when a raw record fails validation and yields no entity."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PersistenceConflict(ImmostatsError):
    """Raised when the upsert of a single entity fails."""

    def __init__(self, external_id: str, cause: Optional[BaseException] = None):
        self.external_id = external_id
        self.cause = cause
        super().__init__(f"Upsert failed for external_id={external_id}: {cause}")


class AlreadyRunning(ImmostatsError):
    """Raised when an ingestion run is triggered while another is in progress."""


class AuthError(ImmostatsError):
    """Raised when a request does not carry a valid API key."""
