"""Thinking-depth tiers and their fixed ordering.

The tier ladder is a static constant shared by the capability registry and
the thinking-depth manager. Configuration may reference tiers but never
redefines the ordering.
"""

from enum import Enum
from typing import Optional, Union

from ..errors.exceptions import InvalidTierError


class Tier(str, Enum):
    """Capability/cost tiers, lowest to highest."""
    MINI = "mini"
    STANDARD = "standard"
    THINKING = "thinking"
    PRO = "pro"
    MAX = "max"

    def __str__(self) -> str:
        return self.value


class PermissionLevel(str, Enum):
    """Capability fence handed to the execution layer."""
    SAFE = "safe"
    TOOLS = "tools"
    DANGEROUS = "dangerous"

    def __str__(self) -> str:
        return self.value


# Explicit ordinal table; next/previous are lookups into this, never string math
TIER_ORDER = (Tier.MINI, Tier.STANDARD, Tier.THINKING, Tier.PRO, Tier.MAX)
_ORDINALS = {tier: index for index, tier in enumerate(TIER_ORDER)}

LOWEST_TIER = TIER_ORDER[0]
HIGHEST_TIER = TIER_ORDER[-1]

TierLike = Union[Tier, str]


def is_valid_tier(value: object) -> bool:
    """True when *value* names a tier. Never raises."""
    if isinstance(value, Tier):
        return True
    if not isinstance(value, str):
        return False
    return value.strip().lower() in Tier._value2member_map_


def parse_tier(value: TierLike) -> Tier:
    """Coerce *value* to a Tier or raise InvalidTierError."""
    if isinstance(value, Tier):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in Tier._value2member_map_:
            return Tier(normalized)
    raise InvalidTierError(value)


def tier_ordinal(tier: TierLike) -> int:
    return _ORDINALS[parse_tier(tier)]


def next_tier(tier: TierLike) -> Optional[Tier]:
    """Immediate successor, or None at the top of the ladder."""
    index = tier_ordinal(tier) + 1
    return TIER_ORDER[index] if index < len(TIER_ORDER) else None


def previous_tier(tier: TierLike) -> Optional[Tier]:
    """Immediate predecessor, or None at the bottom of the ladder."""
    index = tier_ordinal(tier) - 1
    return TIER_ORDER[index] if index >= 0 else None


def compare_tiers(left: TierLike, right: TierLike) -> int:
    """Three-way comparison by ordinal (-1, 0 or 1)."""
    a, b = tier_ordinal(left), tier_ordinal(right)
    return (a > b) - (a < b)


def min_tier(*tiers: TierLike) -> Tier:
    """Lowest of the given tiers."""
    if not tiers:
        raise ValueError("min_tier() requires at least one tier")
    return min((parse_tier(t) for t in tiers), key=_ORDINALS.__getitem__)
