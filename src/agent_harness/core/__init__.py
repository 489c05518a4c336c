"""Core tier model and configuration."""

from .tiers import (
    HIGHEST_TIER,
    LOWEST_TIER,
    TIER_ORDER,
    PermissionLevel,
    Tier,
    compare_tiers,
    next_tier,
    parse_tier,
    previous_tier,
)
from .config import (
    AutonomousEscalationConfig,
    EscalationConfig,
    HarnessConfig,
    ProviderConfig,
    ThinkingConfig,
    load_config,
)

__all__ = [
    "Tier",
    "PermissionLevel",
    "TIER_ORDER",
    "LOWEST_TIER",
    "HIGHEST_TIER",
    "parse_tier",
    "next_tier",
    "previous_tier",
    "compare_tiers",
    "HarnessConfig",
    "ThinkingConfig",
    "EscalationConfig",
    "AutonomousEscalationConfig",
    "ProviderConfig",
    "load_config",
]
