"""Tier catalog, thinking-depth management and model resolution."""

from .capability_registry import CapabilityRegistry, ModelCatalog, ModelEntry
from .model_attempts import EscalationAdvice, ModelAttemptTracker
from .thinking_depth_manager import ModelSelection, ThinkingDepthManager, TierChange
from .history_sink import JsonlHistorySink, load_history
from .tier_labels import tier_from_labels

__all__ = [
    "CapabilityRegistry",
    "ModelCatalog",
    "ModelEntry",
    "EscalationAdvice",
    "ModelAttemptTracker",
    "ModelSelection",
    "ThinkingDepthManager",
    "TierChange",
    "JsonlHistorySink",
    "load_history",
    "tier_from_labels",
]
