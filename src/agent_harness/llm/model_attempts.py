"""Per-model attempt tracking for autonomous escalation.

In autonomous mode the harness tries every model of the current tier
before paying for the next tier. This module only keeps the counters;
ThinkingDepthManager decides what they mean.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


@dataclass
class ModelAttemptRecord:
    """Outcome counters for one (provider, model) pair."""
    provider: str
    model: str
    attempts: int = 0
    failures: int = 0
    failed: bool = False
    last_attempt_at: Optional[str] = None  # ISO timestamp


@dataclass
class EscalationAdvice:
    """Answer to 'should the tier go up now?' with the reason."""
    should_escalate: bool
    reason: str
    details: Dict[str, object] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.should_escalate


class ModelAttemptTracker:
    """Attempt counts, failure marks and a denylist keyed by (provider, model)."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], ModelAttemptRecord] = {}
        self._denylist: Set[str] = set()

    def record(self, provider: str, model: str, success: bool) -> ModelAttemptRecord:
        key = (provider, model)
        record = self._records.get(key)
        if record is None:
            record = ModelAttemptRecord(provider=provider, model=model)
            self._records[key] = record

        record.attempts += 1
        record.last_attempt_at = datetime.now(timezone.utc).isoformat()
        if not success:
            record.failures += 1
            record.failed = True

        logger.debug(
            f"Model attempt {provider}/{model}: success={success} "
            f"(attempts={record.attempts}, failures={record.failures})"
        )
        return record

    def attempt_count(self, provider: str, model: str) -> int:
        record = self._records.get((provider, model))
        return record.attempts if record else 0

    def has_failed(self, provider: str, model: str) -> bool:
        record = self._records.get((provider, model))
        return bool(record and record.failed)

    def total_attempts(self, provider: Optional[str] = None) -> int:
        return sum(
            r.attempts for r in self._records.values()
            if provider is None or r.provider == provider
        )

    @property
    def records(self) -> Dict[Tuple[str, str], ModelAttemptRecord]:
        return dict(self._records)

    def denylist(self, model: str) -> None:
        self._denylist.add(model)
        logger.info(f"Model denylisted for this session: {model}")

    def is_denylisted(self, model: str) -> bool:
        return model in self._denylist

    def reset(self) -> None:
        """Forget attempts. The denylist survives; it is session-wide."""
        self._records.clear()

    def summary(self) -> Dict[str, List[Dict[str, object]]]:
        by_provider: Dict[str, List[Dict[str, object]]] = {}
        for record in self._records.values():
            by_provider.setdefault(record.provider, []).append({
                "model": record.model,
                "attempts": record.attempts,
                "failures": record.failures,
                "failed": record.failed,
            })
        return by_provider
