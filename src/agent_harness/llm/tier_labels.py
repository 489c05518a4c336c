"""Issue-label parsing for tier selection.

Watch automation tags issues with labels such as ``tier:pro`` or
``complexity:high``; this maps them onto the tier ladder.
"""

import re
from typing import Iterable, Optional

from ..core.tiers import Tier

_TIER_LABEL = re.compile(r"^tier[:_\-](?P<tier>[a-z]+)$")
_COMPLEXITY_LABEL = re.compile(r"^complexity[:_\-](?P<level>[a-z]+)$")

COMPLEXITY_TIERS = {
    "low": Tier.MINI,
    "medium": Tier.STANDARD,
    "high": Tier.PRO,
}


def tier_from_label(label: str) -> Optional[Tier]:
    """Tier named by a single label, or None if it is not a tier label."""
    normalized = label.strip().lower()

    match = _TIER_LABEL.match(normalized)
    if match:
        return Tier._value2member_map_.get(match.group("tier"))

    match = _COMPLEXITY_LABEL.match(normalized)
    if match:
        return COMPLEXITY_TIERS.get(match.group("level"))

    return None


def tier_from_labels(labels: Iterable[str]) -> Optional[Tier]:
    """First tier label in *labels*, in the order given."""
    for label in labels or ():
        tier = tier_from_label(label)
        if tier is not None:
            return tier
    return None
