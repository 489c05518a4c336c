"""Error types and user-friendly error translation."""

from .exceptions import CatalogError, ConfigError, HarnessError, InvalidTierError
from .translator import ErrorTranslator, TierUnavailableError, UserFriendlyError

__all__ = [
    "HarnessError",
    "CatalogError",
    "ConfigError",
    "InvalidTierError",
    "ErrorTranslator",
    "TierUnavailableError",
    "UserFriendlyError",
]
