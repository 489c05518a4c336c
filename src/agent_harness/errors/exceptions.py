"""Exception hierarchy for the harness.

Only load-time and caller-input problems are exceptions. Routine absence
(no model for a tier, cannot escalate further, no override) is reported as
None by the APIs that can encounter it.
"""

from typing import Iterable, Optional


class HarnessError(Exception):
    """Base class for all harness errors."""


class CatalogError(HarnessError):
    """The capability catalog is missing or malformed.

    Raised from CapabilityRegistry.load_catalog; a partially valid catalog
    is never used.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{message} (catalog: {path})"
        super().__init__(message)


class InvalidTierError(HarnessError, ValueError):
    """A value that is not one of the known tiers was supplied."""

    def __init__(self, tier: object, valid: Optional[Iterable[str]] = None):
        from ..core.tiers import TIER_ORDER

        self.tier = tier
        self.valid = list(valid) if valid is not None else [t.value for t in TIER_ORDER]
        super().__init__(
            f"Invalid tier: {tier!r}. Must be one of: {', '.join(self.valid)}"
        )


class ConfigError(HarnessError):
    """The harness configuration file could not be parsed or validated."""
