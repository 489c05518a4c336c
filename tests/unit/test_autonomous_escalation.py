"""Tests for autonomous-mode escalation: per-model attempts, denylist and gating."""

import pytest

from agent_harness.core.tiers import Tier
from agent_harness.llm.capability_registry import CapabilityRegistry
from agent_harness.llm.model_attempts import EscalationAdvice, ModelAttemptRecord
from agent_harness.llm.thinking_depth_manager import ThinkingDepthManager


@pytest.fixture
def two_mini_registry(catalog_data):
    """Seed catalog plus a second anthropic mini model."""
    catalog_data["providers"]["anthropic"]["models"]["claude-instant"] = {
        "tier": "mini", "cost_per_mtok_input": 0.5,
    }
    return CapabilityRegistry.from_dict(catalog_data)


def _autonomous_manager(make_config, registry, **policy):
    autonomous_escalation = {"min_attempts_per_model": 2, "min_total_attempts": 10, "retry_failed_models": True}
    autonomous_escalation.update(policy)
    config = make_config(
        default_tier="mini",
        autonomous_max_tier="standard",
        autonomous_escalation=autonomous_escalation,
    )
    return ThinkingDepthManager(config, registry=registry, autonomous_mode=True)


@pytest.fixture
def auto_manager(make_config, two_mini_registry):
    return _autonomous_manager(make_config, two_mini_registry)


def _fail_all(manager, provider, models, times=1):
    for _ in range(times):
        for model in models:
            manager.record_model_attempt(provider, model, success=False)


class TestAutonomousCeiling:
    def test_autonomous_max_caps_effective_max(self, make_config, registry):
        manager = ThinkingDepthManager(make_config(), registry=registry, autonomous_mode=True)

        assert manager.autonomous_mode is True
        assert manager.max_tier == Tier.STANDARD
        assert manager.escalate_tier() is None

    def test_enabling_clamps_current_tier(self, manager):
        manager.current_tier = "pro"

        manager.enable_autonomous_mode()

        assert manager.current_tier == Tier.STANDARD
        assert manager.tier_history[-1].reason == "autonomous_clamp"

    def test_disabling_restores_configured_max(self, auto_manager):
        auto_manager.disable_autonomous_mode()
        assert auto_manager.max_tier == Tier.PRO

    def test_session_autonomous_max(self, auto_manager):
        auto_manager.autonomous_max_tier = "thinking"
        assert auto_manager.autonomous_max_tier == Tier.THINKING
        assert auto_manager.max_tier == Tier.THINKING

    def test_lowering_autonomous_max_clamps(self, auto_manager):
        auto_manager.current_tier = "standard"
        auto_manager.autonomous_max_tier = "mini"

        assert auto_manager.current_tier == Tier.MINI
        assert auto_manager.tier_history[-1].reason == "autonomous_clamp"

    def test_session_max_still_applies_below_autonomous_max(self, auto_manager):
        auto_manager.max_tier = "mini"
        assert auto_manager.max_tier == Tier.MINI


class TestAttemptTracking:
    def test_record_attempts(self, auto_manager):
        record = auto_manager.record_model_attempt("anthropic", "claude-haiku", success=True)
        assert isinstance(record, ModelAttemptRecord)
        assert (record.attempts, record.failures, record.failed) == (1, 0, False)

        record = auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)
        assert (record.attempts, record.failures, record.failed) == (2, 1, True)
        assert record.last_attempt_at is not None

        assert auto_manager.model_attempt_count("anthropic", "claude-haiku") == 2
        assert auto_manager.model_failed("anthropic", "claude-haiku") is True
        assert auto_manager.model_failed("anthropic", "claude-instant") is False

    def test_attempts_are_keyed_by_provider(self, auto_manager):
        auto_manager.record_model_attempt("anthropic", "shared", success=False)
        assert auto_manager.model_attempt_count("openai", "shared") == 0

    def test_summary(self, auto_manager):
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=True)
        auto_manager.record_model_attempt("openai", "gpt-mini", success=True)

        summary = auto_manager.model_attempts_summary()

        assert summary["tier"] == Tier.MINI
        assert summary["total_attempts"] == 3
        assert summary["providers"]["anthropic"] == [
            {"model": "claude-haiku", "attempts": 2, "failures": 1, "failed": True},
        ]
        assert summary["providers"]["openai"][0]["failed"] is False

    def test_model_attempts_returns_a_copy(self, auto_manager):
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)
        auto_manager.model_attempts.clear()
        assert auto_manager.model_attempt_count("anthropic", "claude-haiku") == 1

    def test_enabling_autonomous_mode_resets_tracking(self, auto_manager):
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)
        auto_manager.enable_autonomous_mode()
        assert auto_manager.model_attempts == {}


class TestDenylist:
    def test_denylisted_models_are_skipped(self, auto_manager):
        auto_manager.denylist_model("claude-haiku")

        assert auto_manager.model_denylisted("claude-haiku") is True
        assert auto_manager.available_models_for_tier("anthropic") == ["claude-instant"]
        assert auto_manager.select_next_model("anthropic") == "claude-instant"

    def test_denylist_survives_tracking_reset(self, auto_manager):
        auto_manager.denylist_model("claude-haiku")
        auto_manager.reset_model_tracking()
        assert auto_manager.model_denylisted("claude-haiku") is True


class TestSelectNextModel:
    def test_untested_models_first_then_least_tried(self, auto_manager):
        assert auto_manager.available_models_for_tier("anthropic") == ["claude-haiku", "claude-instant"]

        assert auto_manager.select_next_model("anthropic") == "claude-haiku"
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)

        assert auto_manager.select_next_model("anthropic") == "claude-instant"
        auto_manager.record_model_attempt("anthropic", "claude-instant", success=False)

        assert auto_manager.select_next_model("anthropic") == "claude-haiku"
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)

        assert auto_manager.select_next_model("anthropic") == "claude-instant"
        auto_manager.record_model_attempt("anthropic", "claude-instant", success=False)

        assert auto_manager.select_next_model("anthropic") is None

    def test_failed_models_not_retried_when_disabled(self, make_config, two_mini_registry):
        manager = _autonomous_manager(make_config, two_mini_registry, retry_failed_models=False)
        _fail_all(manager, "anthropic", ["claude-haiku", "claude-instant"])

        assert manager.select_next_model("anthropic") is None

    def test_successful_model_retried_when_failures_not_retried(self, make_config, two_mini_registry):
        manager = _autonomous_manager(make_config, two_mini_registry, retry_failed_models=False)
        manager.record_model_attempt("anthropic", "claude-haiku", success=False)
        manager.record_model_attempt("anthropic", "claude-instant", success=True)

        assert manager.select_next_model("anthropic") == "claude-instant"

    def test_no_models_for_provider(self, auto_manager):
        assert auto_manager.select_next_model("gemini") is None

    def test_pinned_models_are_the_candidates(self, make_config, two_mini_registry):
        config = make_config(
            default_tier="mini",
            providers=[{"name": "anthropic", "thinking_tiers": {"mini": ["claude-pinned"]}}],
        )
        manager = ThinkingDepthManager(config, registry=two_mini_registry, autonomous_mode=True)

        assert manager.available_models_for_tier("anthropic") == ["claude-pinned"]


class TestShouldEscalateTier:
    def test_not_autonomous(self, manager):
        advice = manager.should_escalate_tier("anthropic")
        assert advice == EscalationAdvice(False, "not_autonomous")
        assert not advice

    def test_untested_models_remain(self, auto_manager):
        auto_manager.record_model_attempt("anthropic", "claude-haiku", success=False)

        advice = auto_manager.should_escalate_tier("anthropic")

        assert advice.should_escalate is False
        assert advice.reason == "untested_models_remain"
        assert advice.details["untested"] == ["claude-instant"]

    def test_below_minimum_attempts(self, auto_manager):
        _fail_all(auto_manager, "anthropic", ["claude-haiku", "claude-instant"])

        advice = auto_manager.should_escalate_tier("anthropic")

        assert advice.reason == "below_min_attempts"
        assert advice.details == {"total_attempts": 2, "required": 4}

    def test_all_models_failed(self, auto_manager):
        _fail_all(auto_manager, "anthropic", ["claude-haiku", "claude-instant"], times=2)

        advice = auto_manager.should_escalate_tier("anthropic")

        assert bool(advice) is True
        assert advice.reason == "all_models_failed"

    def test_a_model_succeeded(self, auto_manager):
        _fail_all(auto_manager, "anthropic", ["claude-haiku"], times=2)
        auto_manager.record_model_attempt("anthropic", "claude-instant", success=True)
        auto_manager.record_model_attempt("anthropic", "claude-instant", success=True)

        advice = auto_manager.should_escalate_tier("anthropic")
        assert advice.should_escalate is False
        assert advice.reason == "model_succeeded"

    def test_min_total_attempts_gate(self, make_config, two_mini_registry):
        manager = _autonomous_manager(
            make_config, two_mini_registry, min_attempts_per_model=2, min_total_attempts=3,
        )
        _fail_all(manager, "anthropic", ["claude-haiku", "claude-instant"])
        assert manager.should_escalate_tier("anthropic").reason == "below_min_attempts"

        manager.record_model_attempt("anthropic", "claude-haiku", success=False)
        assert manager.should_escalate_tier("anthropic").reason == "all_models_failed"

    def test_no_models_available(self, auto_manager):
        advice = auto_manager.should_escalate_tier("gemini")
        assert advice.should_escalate is True
        assert advice.reason == "no_models_available"

    def test_at_autonomous_max(self, auto_manager):
        auto_manager.current_tier = "standard"

        advice = auto_manager.should_escalate_tier("anthropic")
        assert advice.should_escalate is False
        assert advice.reason == "at_max_tier"


class TestEscalateTierIntelligent:
    def test_escalates_when_all_models_failed(self, auto_manager):
        auto_manager.denylist_model("retired-model")
        _fail_all(auto_manager, "anthropic", ["claude-haiku", "claude-instant"], times=2)

        assert auto_manager.escalate_tier_intelligent("anthropic") == Tier.STANDARD

        assert auto_manager.current_tier == Tier.STANDARD
        assert auto_manager.escalation_count == 1
        assert auto_manager.tier_history[-1].reason == "autonomous_all_models_failed"
        # Fresh tracking for the new tier; the denylist stays
        assert auto_manager.model_attempts == {}
        assert auto_manager.model_denylisted("retired-model") is True

    def test_declines_while_models_untested(self, auto_manager):
        assert auto_manager.escalate_tier_intelligent("anthropic") is None
        assert auto_manager.current_tier == Tier.MINI
        assert auto_manager.tier_history == []

    def test_declines_at_ceiling(self, auto_manager):
        auto_manager.current_tier = "standard"
        _fail_all(auto_manager, "anthropic", ["claude-sonnet"], times=10)

        assert auto_manager.escalate_tier_intelligent("anthropic") is None
        assert auto_manager.current_tier == Tier.STANDARD
