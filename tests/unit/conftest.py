"""Shared catalog/config fixtures for thinking-depth tests."""

import copy

import pytest

from agent_harness.core.config import ThinkingConfig
from agent_harness.llm.capability_registry import CapabilityRegistry
from agent_harness.llm.thinking_depth_manager import ThinkingDepthManager

# anthropic: mini + standard; openai: mini + thinking; nobody serves pro/max
SEED_CATALOG = {
    "schema_version": "1.0",
    "providers": {
        "anthropic": {
            "display_name": "Anthropic",
            "models": {
                "claude-haiku": {"tier": "mini", "cost_per_mtok_input": 0.25, "context_window": 200000},
                "claude-sonnet": {"tier": "standard", "cost_per_mtok_input": 3.0, "context_window": 200000},
            },
        },
        "openai": {
            "display_name": "OpenAI",
            "models": {
                "gpt-mini": {"tier": "mini", "cost_per_mtok_input": 0.15},
                "o1": {"tier": "thinking", "cost_per_mtok_input": 15.0},
            },
        },
    },
    "tier_recommendations": {
        "simple_edit": {"recommended_tier": "mini", "complexity_threshold": 0.2},
        "standard_feature": {"recommended_tier": "standard", "complexity_threshold": 0.5},
        "complex_refactor": {"recommended_tier": "thinking", "complexity_threshold": 0.7},
        "architecture": {"recommended_tier": "max", "complexity_threshold": 0.9},
    },
}


def _make_config(**overrides) -> ThinkingConfig:
    data = dict(
        default_tier="standard",
        max_tier="pro",
        allow_provider_switch=True,
        escalation={
            "on_fail_attempts": 2,
            "on_complexity_threshold": {"files_changed": 5, "modules_touched": 3},
        },
        permissions_by_tier={"mini": "safe", "standard": "tools", "thinking": "tools", "pro": "dangerous"},
        overrides={"security_review": "max", "docs": "mini"},
        providers=[
            {"name": "anthropic", "priority": 1},
            {"name": "openai", "priority": 2},
        ],
    )
    data.update(overrides)
    return ThinkingConfig(**data)


@pytest.fixture
def make_config():
    """Factory for ThinkingConfig variants built on the seed policy."""
    return _make_config


@pytest.fixture
def catalog_data():
    return copy.deepcopy(SEED_CATALOG)


@pytest.fixture
def registry(catalog_data):
    return CapabilityRegistry.from_dict(catalog_data)


@pytest.fixture
def config():
    return _make_config()


@pytest.fixture
def manager(config, registry):
    return ThinkingDepthManager(config, registry=registry)
