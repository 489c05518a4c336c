"""Thinking-depth tier selection and escalation.

One ThinkingDepthManager is owned by one run (a work-loop session or a
workstream). It holds the current tier, an optional session ceiling, the
net escalation count and an audit history of every tier change, and it
resolves abstract tiers to concrete (provider, model) pairs through a
CapabilityRegistry.

Instances are not thread-safe; parallel workstreams each get their own.
The registry they share is read-only once loaded.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from ..core.config import HarnessConfig, ThinkingConfig
from ..core.tiers import (
    LOWEST_TIER,
    TIER_ORDER,
    PermissionLevel,
    Tier,
    TierLike,
    compare_tiers,
    min_tier,
    next_tier,
    parse_tier,
    previous_tier,
    tier_ordinal,
)
from .capability_registry import CapabilityRegistry
from .model_attempts import EscalationAdvice, ModelAttemptRecord, ModelAttemptTracker
from .tier_labels import tier_from_labels

logger = logging.getLogger(__name__)


class ModelSelection(NamedTuple):
    """A resolved (provider, model) pair with its catalog metadata."""
    provider: str
    model: str
    metadata: Dict[str, Any]


@dataclass(frozen=True)
class TierChange:
    """One accepted tier transition."""
    from_tier: Tier
    to_tier: Tier
    reason: str
    timestamp: str  # ISO 8601, UTC
    escalation_count: int = 0


HistorySink = Callable[[TierChange], None]


class ThinkingDepthManager:
    """Tier state machine with single-step escalation and de-escalation.

    Routine dead ends (already at the ceiling, already at the floor, no
    model for a tier) return None. Unknown tier names raise
    InvalidTierError.
    """

    def __init__(
        self,
        configuration: Union[ThinkingConfig, HarnessConfig],
        registry: Optional[CapabilityRegistry] = None,
        autonomous_mode: bool = False,
        history_sink: Optional[HistorySink] = None,
        catalog_path: Optional[Path] = None,
    ):
        if isinstance(configuration, HarnessConfig):
            catalog_path = catalog_path or configuration.catalog_path
            configuration = configuration.thinking

        self.configuration: ThinkingConfig = configuration
        if registry is None:
            registry = CapabilityRegistry(catalog_path=catalog_path)
            registry.load_catalog()
        self.registry = registry

        self._history_sink = history_sink
        self._session_max_tier: Optional[Tier] = None
        self._session_autonomous_max_tier: Optional[Tier] = None
        self._autonomous_mode = autonomous_mode
        self._escalation_count = 0
        self._tier_history: List[TierChange] = []
        self._attempts = ModelAttemptTracker()

        self._current_tier: Tier = min_tier(self.default_tier, self.max_tier)

        logger.debug(
            f"ThinkingDepthManager initialized: default={self.default_tier}, "
            f"max={self.max_tier}, current={self._current_tier}, autonomous={autonomous_mode}"
        )

    # --- Tier state ---

    @property
    def current_tier(self) -> Tier:
        return self._current_tier

    @current_tier.setter
    def current_tier(self, tier: TierLike) -> None:
        self._apply_tier(parse_tier(tier), "direct_set")

    @property
    def default_tier(self) -> Tier:
        return self.configuration.default_tier

    @property
    def max_tier(self) -> Tier:
        """Effective ceiling: session override, else config; autonomous cap on top."""
        ceiling = self._session_max_tier or self.configuration.max_tier
        if self._autonomous_mode:
            ceiling = min_tier(ceiling, self.autonomous_max_tier)
        return ceiling

    @max_tier.setter
    def max_tier(self, tier: TierLike) -> None:
        tier = parse_tier(tier)
        old_max = self.max_tier
        self._session_max_tier = tier
        logger.info(f"Max tier updated for session: {old_max} -> {self.max_tier}")
        self._enforce_ceiling("max_tier_clamp")

    @property
    def session_max_tier(self) -> Optional[Tier]:
        return self._session_max_tier

    @property
    def escalation_count(self) -> int:
        return self._escalation_count

    @property
    def tier_history(self) -> List[TierChange]:
        """Copy of the transition history; entries are immutable."""
        return list(self._tier_history)

    def reset_to_default(self) -> Tier:
        """Back to the default tier with no session ceiling and a zero count.

        History is an audit log of the whole session and is kept.
        """
        self._session_max_tier = None
        self._escalation_count = 0
        self._apply_tier(self.default_tier, "reset")
        logger.info(f"Thinking tier reset to default ({self._current_tier})")
        return self._current_tier

    def _apply_tier(self, requested: Tier, reason: str) -> None:
        """Single mutation path: clamp to the ceiling, record if changed."""
        applied = min_tier(requested, self.max_tier)
        if applied != requested:
            logger.warning(f"Tier {requested} capped at max tier {applied}")

        old = self._current_tier
        self._current_tier = applied
        if applied != old:
            self._record_change(old, applied, reason)

    def _enforce_ceiling(self, reason: str) -> None:
        if compare_tiers(self._current_tier, self.max_tier) > 0:
            self._apply_tier(self._current_tier, reason)

    def _record_change(self, old: Tier, new: Tier, reason: str) -> None:
        change = TierChange(
            from_tier=old,
            to_tier=new,
            reason=reason,
            timestamp=datetime.now(timezone.utc).isoformat(),
            escalation_count=self._escalation_count,
        )
        self._tier_history.append(change)
        if self._history_sink is not None:
            try:
                self._history_sink(change)
            except Exception as e:
                logger.warning(f"Tier history sink failed for {old} -> {new} (non-fatal): {e}")

    # --- Escalation state machine ---

    def can_escalate(self) -> bool:
        successor = next_tier(self._current_tier)
        return successor is not None and compare_tiers(successor, self.max_tier) <= 0

    def can_de_escalate(self) -> bool:
        return previous_tier(self._current_tier) is not None

    def escalate_tier(self, reason: Optional[str] = None) -> Optional[Tier]:
        """Move one tier up. Returns the new tier, or None at the ceiling."""
        if not self.can_escalate():
            logger.warning(
                f"Cannot escalate beyond {self._current_tier} "
                f"(max {self.max_tier}, reason: {reason or 'escalation'})"
            )
            return None

        old = self._current_tier
        self._escalation_count += 1
        self._apply_tier(next_tier(old), reason or "escalation")
        logger.info(
            f"Escalated thinking tier {old} -> {self._current_tier} "
            f"(reason: {reason or 'escalation'}, count: {self._escalation_count})"
        )
        return self._current_tier

    def de_escalate_tier(self, reason: Optional[str] = None) -> Optional[Tier]:
        """Move one tier down. Returns the new tier, or None at the floor."""
        if not self.can_de_escalate():
            logger.debug(f"Cannot de-escalate below {self._current_tier}")
            return None

        old = self._current_tier
        self._escalation_count = max(self._escalation_count - 1, 0)
        self._apply_tier(previous_tier(old), reason or "de_escalation")
        logger.info(
            f"De-escalated thinking tier {old} -> {self._current_tier} "
            f"(reason: {reason or 'de_escalation'})"
        )
        return self._current_tier

    def tier_info(self, tier: TierLike) -> Dict[str, Any]:
        """Pure description of *tier* relative to the current ceiling."""
        tier = parse_tier(tier)
        return {
            "tier": tier,
            "ordinal": tier_ordinal(tier),
            "next_tier": next_tier(tier),
            "previous_tier": previous_tier(tier),
            "available_models": self.registry.models_by_tier(tier),
            "at_max": tier == self.max_tier,
            "at_min": tier == LOWEST_TIER,
            "within_max": compare_tiers(tier, self.max_tier) <= 0,
        }

    # --- Model resolution ---

    def _resolve_for_provider(self, tier: Tier, provider: str) -> Optional[ModelSelection]:
        """Operator-pinned models first, then the catalog within the allowlist."""
        pinned = self.configuration.models_for_tier(tier, provider)
        if pinned:
            model = pinned[0]
            logger.debug(f"Selected pinned model {provider}/{model} for tier {tier}")
            return ModelSelection(provider, model, self.registry.model_info(provider, model) or {})

        found = self.registry.best_model_for_tier(
            tier, provider, allowed_models=self.configuration.allowed_models(provider)
        )
        if found is None:
            return None
        model, metadata = found
        logger.debug(f"Selected catalog model {provider}/{model} for tier {tier}")
        return ModelSelection(provider, model, metadata)

    def resolution_candidates(self, tier: TierLike, provider: Optional[str] = None) -> List[str]:
        """Providers select_model_for_tier would try for *tier*, in order.

        The requested provider comes first. Others follow in configured
        priority order (catalog order when no providers are configured), and
        only when provider switching is allowed.
        """
        tier = parse_tier(tier)
        candidates = [provider] if provider else []
        if provider and not self.configuration.allow_provider_switch:
            return candidates

        configured = self.configuration.provider_priority_order()
        if configured:
            offering = set(self.registry.providers_offering(tier, configured))
            others = [
                name for name in configured
                if name in offering or self.configuration.models_for_tier(tier, name)
            ]
        else:
            others = self.registry.providers_offering(tier)

        candidates.extend(name for name in others if name != provider)
        return candidates

    def select_model_for_tier(
        self,
        tier: Optional[TierLike] = None,
        provider: Optional[str] = None,
    ) -> Optional[ModelSelection]:
        """Resolve *tier* (default: current tier) to a concrete model.

        Tries *provider* first. If it lacks the tier and provider switching
        is allowed, the other configured providers are tried in priority
        order. Returns None when nothing offers the tier.
        """
        tier = parse_tier(tier) if tier is not None else self._current_tier

        for index, candidate in enumerate(self.resolution_candidates(tier, provider)):
            selection = self._resolve_for_provider(tier, candidate)
            if selection is None:
                if index == 0 and provider and not self.configuration.allow_provider_switch:
                    logger.warning(
                        f"Provider {provider} has no model for tier {tier} "
                        "and provider switching is disabled"
                    )
                continue
            if provider and candidate != provider:
                logger.info(
                    f"Provider {provider} lacks tier {tier}; "
                    f"switched to {candidate}/{selection.model}"
                )
            return selection

        logger.warning(f"No model found for tier {tier} (requested provider: {provider})")
        return None

    def fallback_tier_order(self, tier: TierLike) -> List[Tier]:
        """Other tiers to try when *tier* is unavailable.

        Lower tiers nearest first (cheaper), then higher tiers up to the
        ceiling.
        """
        tier = parse_tier(tier)
        ordinal = tier_ordinal(tier)
        lower = [t for t in reversed(TIER_ORDER) if tier_ordinal(t) < ordinal]
        higher = [
            t for t in TIER_ORDER
            if tier_ordinal(t) > ordinal and compare_tiers(t, self.max_tier) <= 0
        ]
        return lower + higher

    def select_model_with_fallback(
        self,
        tier: Optional[TierLike] = None,
        provider: Optional[str] = None,
    ) -> Optional[Tuple[Tier, ModelSelection]]:
        """Like select_model_for_tier, but degrades to neighbouring tiers.

        Returns (tier actually served, selection) or None. The current tier
        is not changed.
        """
        tier = parse_tier(tier) if tier is not None else self._current_tier
        selection = self.select_model_for_tier(tier, provider=provider)
        if selection is not None:
            return tier, selection

        for fallback in self.fallback_tier_order(tier):
            selection = self.select_model_for_tier(fallback, provider=provider)
            if selection is not None:
                logger.warning(
                    f"Falling back from tier {tier} to {fallback} "
                    f"({selection.provider}/{selection.model})"
                )
                return fallback, selection
        return None

    def tier_for_model(self, provider: str, model: str) -> Optional[Tier]:
        return self.registry.tier_for_model(provider, model)

    # --- Recommendations and policy reads ---

    def recommend_tier_for_complexity(self, complexity_score: float) -> Tier:
        """Catalog recommendation for *complexity_score*, capped at max_tier."""
        recommended = self.registry.recommend_tier(complexity_score)
        capped = min_tier(recommended, self.max_tier)
        if capped != recommended:
            logger.debug(
                f"Recommended tier {recommended} for complexity {complexity_score} "
                f"capped to {capped}"
            )
        return capped

    def tier_override_for(self, key: str) -> Optional[Tier]:
        """Pinned tier for a skill/template key, capped at max_tier."""
        override = self.configuration.tier_override_for(key)
        if override is None:
            return None
        capped = min_tier(override, self.max_tier)
        if capped != override:
            logger.warning(f"Override tier {override} for '{key}' exceeds max; using {capped}")
        return capped

    def tier_for_labels(self, labels: Iterable[str]) -> Optional[Tier]:
        """Tier requested by issue labels, capped at max_tier."""
        tier = tier_from_labels(labels)
        if tier is None:
            return None
        return min_tier(tier, self.max_tier)

    def permission_for_current_tier(self) -> PermissionLevel:
        return self.configuration.permission_for_tier(self._current_tier)

    def should_escalate_on_failures(self, failure_count: int) -> bool:
        return failure_count >= self.configuration.escalation.on_fail_attempts

    def should_escalate_on_complexity(self, context: Mapping[str, Any]) -> bool:
        """True if any configured metric in *context* meets its threshold.

        Missing or non-numeric metric values are ignored.
        With no thresholds configured this is always False.
        """
        thresholds = self.configuration.escalation.on_complexity_threshold
        if not thresholds:
            return False

        for metric, threshold in thresholds.items():
            value = context.get(metric)
            if not isinstance(value, (int, float)):
                continue
            if value >= threshold:
                logger.debug(f"Complexity metric {metric}={value} meets threshold {threshold}")
                return True
        return False

    # --- Autonomous mode ---

    @property
    def autonomous_mode(self) -> bool:
        return self._autonomous_mode

    def enable_autonomous_mode(self) -> None:
        """Cap tiers at autonomous_max_tier and start fresh model tracking."""
        self._autonomous_mode = True
        self._attempts.reset()
        self._enforce_ceiling("autonomous_clamp")
        logger.info(f"Autonomous mode enabled (max tier {self.max_tier})")

    def disable_autonomous_mode(self) -> None:
        self._autonomous_mode = False
        logger.info("Autonomous mode disabled")

    @property
    def autonomous_max_tier(self) -> Tier:
        return self._session_autonomous_max_tier or self.configuration.autonomous_max_tier

    @autonomous_max_tier.setter
    def autonomous_max_tier(self, tier: TierLike) -> None:
        self._session_autonomous_max_tier = parse_tier(tier)
        self._enforce_ceiling("autonomous_clamp")

    def record_model_attempt(self, provider: str, model: str, success: bool) -> ModelAttemptRecord:
        return self._attempts.record(provider, model, success)

    def model_attempt_count(self, provider: str, model: str) -> int:
        return self._attempts.attempt_count(provider, model)

    def model_failed(self, provider: str, model: str) -> bool:
        return self._attempts.has_failed(provider, model)

    @property
    def model_attempts(self) -> Dict[Tuple[str, str], ModelAttemptRecord]:
        return self._attempts.records

    def denylist_model(self, model: str) -> None:
        self._attempts.denylist(model)

    def model_denylisted(self, model: str) -> bool:
        return self._attempts.is_denylisted(model)

    def reset_model_tracking(self) -> None:
        self._attempts.reset()

    def model_attempts_summary(self) -> Dict[str, Any]:
        return {
            "tier": self._current_tier,
            "total_attempts": self._attempts.total_attempts(),
            "providers": self._attempts.summary(),
        }

    def available_models_for_tier(self, provider: str, tier: Optional[TierLike] = None) -> List[str]:
        """Candidate models of *provider* at *tier*, minus denylisted ones."""
        tier = parse_tier(tier) if tier is not None else self._current_tier
        models = self.configuration.models_for_tier(tier, provider)
        if not models:
            allowed = self.configuration.allowed_models(provider)
            models = [
                m for m in self.registry.models_by_tier(tier, provider).get(provider, [])
                if allowed is None or m in allowed
            ]
        return [m for m in models if not self._attempts.is_denylisted(m)]

    def select_next_model(self, provider: str) -> Optional[str]:
        """Next model to try at the current tier, or None when exhausted.

        Untested models come first, then models still below
        min_attempts_per_model (fewest attempts first). Models that failed
        are only retried when retry_failed_models is set.
        """
        policy = self.configuration.autonomous_escalation
        models = self.available_models_for_tier(provider)

        for model in models:
            if self._attempts.attempt_count(provider, model) == 0:
                return model

        eligible = [
            m for m in models
            if self._attempts.attempt_count(provider, m) < policy.min_attempts_per_model
            and (policy.retry_failed_models or not self._attempts.has_failed(provider, m))
        ]
        if not eligible:
            return None
        return min(eligible, key=lambda m: self._attempts.attempt_count(provider, m))

    def should_escalate_tier(self, provider: str) -> EscalationAdvice:
        """Autonomous escalation gate: every model of the tier must have failed."""
        if not self._autonomous_mode:
            return EscalationAdvice(False, "not_autonomous")
        if not self.can_escalate():
            return EscalationAdvice(False, "at_max_tier", {"max_tier": self.max_tier})

        models = self.available_models_for_tier(provider)
        if not models:
            return EscalationAdvice(True, "no_models_available", {"tier": self._current_tier})

        untested = [m for m in models if self._attempts.attempt_count(provider, m) == 0]
        if untested:
            return EscalationAdvice(False, "untested_models_remain", {"untested": untested})

        policy = self.configuration.autonomous_escalation
        total = sum(self._attempts.attempt_count(provider, m) for m in models)
        required = min(policy.min_total_attempts, len(models) * policy.min_attempts_per_model)
        if total < required:
            return EscalationAdvice(
                False, "below_min_attempts", {"total_attempts": total, "required": required}
            )

        if all(self._attempts.has_failed(provider, m) for m in models):
            return EscalationAdvice(True, "all_models_failed", {"total_attempts": total})

        return EscalationAdvice(False, "model_succeeded", {"total_attempts": total})

    def escalate_tier_intelligent(self, provider: str) -> Optional[Tier]:
        """Escalate only when should_escalate_tier agrees; resets tracking on success."""
        advice = self.should_escalate_tier(provider)
        if not advice.should_escalate:
            logger.debug(f"Autonomous escalation declined: {advice.reason}")
            return None

        new_tier = self.escalate_tier(reason=f"autonomous_{advice.reason}")
        if new_tier is not None:
            self._attempts.reset()
        return new_tier

    # --- Reporting ---

    def status(self) -> Dict[str, Any]:
        return {
            "current_tier": self._current_tier,
            "default_tier": self.default_tier,
            "max_tier": self.max_tier,
            "escalation_count": self._escalation_count,
            "permission": self.permission_for_current_tier(),
            "autonomous_mode": self._autonomous_mode,
            "history_length": len(self._tier_history),
        }
