"""Capability registry: provider -> model -> tier catalog.

The catalog is loaded once and is read-only afterwards, so one registry can
be shared by several ThinkingDepthManager instances as long as
load_catalog() runs before they start reading.

Catalog layout (YAML):

    schema_version: "1.0"
    providers:
      anthropic:
        display_name: Anthropic
        models:
          claude-haiku: {tier: mini, cost_per_mtok_input: 0.8}
    tier_recommendations:
      simple_edit: {recommended_tier: mini, complexity_threshold: 0.0}
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.tiers import LOWEST_TIER, TIER_ORDER, Tier, TierLike, is_valid_tier, parse_tier, tier_ordinal
from ..errors.exceptions import CatalogError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSIONS = ("1.0",)

DEFAULT_CATALOG_PATH = Path("config/models_catalog.yaml")


class ModelEntry(BaseModel):
    """Catalog metadata for one model. Unknown keys are kept as metadata."""
    model_config = ConfigDict(frozen=True, extra="allow")

    tier: Tier
    cost_per_mtok_input: Optional[float] = None
    cost_per_mtok_output: Optional[float] = None
    context_window: Optional[int] = None

    def metadata(self) -> Dict[str, Any]:
        """Plain-dict copy safe to hand to callers."""
        return self.model_dump(mode="json", exclude_none=True)


class ProviderEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    display_name: Optional[str] = None
    models: Dict[str, ModelEntry] = Field(default_factory=dict)


class TierRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    recommended_tier: Tier
    complexity_threshold: float = 0.0


class ModelCatalog(BaseModel):
    """Immutable snapshot of the capability catalog."""
    model_config = ConfigDict(frozen=True)

    schema_version: str
    providers: Dict[str, ProviderEntry] = Field(default_factory=dict)
    tier_recommendations: Dict[str, TierRecommendation] = Field(default_factory=dict)


def _validate_raw_catalog(data: Any, source: Optional[str]) -> Dict[str, Any]:
    """Structural checks with precise messages, before pydantic parsing.

    Returns a copy with tier names normalized to lower case.
    """
    if not isinstance(data, dict):
        raise CatalogError("Catalog must be a mapping", path=source)

    version = data.get("schema_version")
    if version is None:
        raise CatalogError("Catalog is missing schema_version", path=source)
    if str(version) not in SUPPORTED_SCHEMA_VERSIONS:
        raise CatalogError(
            f"Unsupported schema_version {version!r}; supported: "
            f"{', '.join(SUPPORTED_SCHEMA_VERSIONS)}",
            path=source,
        )

    providers = data.get("providers") or {}
    if not isinstance(providers, dict):
        raise CatalogError("Catalog 'providers' must be a mapping", path=source)

    normalized_providers: Dict[str, Any] = {}
    for provider_name, provider_data in providers.items():
        if not isinstance(provider_data, dict) or not isinstance(provider_data.get("models", {}), dict):
            raise CatalogError(f"Provider {provider_name} must have a 'models' mapping", path=source)

        models: Dict[str, Any] = {}
        for model_name, model_data in (provider_data.get("models") or {}).items():
            if not isinstance(model_data, dict) or "tier" not in model_data:
                raise CatalogError(f"Model {provider_name}/{model_name} missing 'tier'", path=source)
            tier = model_data["tier"]
            if not is_valid_tier(tier):
                raise CatalogError(
                    f"Model {provider_name}/{model_name} has invalid tier: {tier!r}",
                    path=source,
                )
            models[str(model_name)] = {**model_data, "tier": parse_tier(tier).value}

        normalized_providers[str(provider_name)] = {**provider_data, "models": models}

    recommendations = data.get("tier_recommendations") or {}
    if not isinstance(recommendations, dict):
        raise CatalogError("Catalog 'tier_recommendations' must be a mapping", path=source)
    normalized_recs: Dict[str, Any] = {}
    for category, rec in recommendations.items():
        if not isinstance(rec, dict) or not is_valid_tier(rec.get("recommended_tier")):
            raise CatalogError(
                f"Tier recommendation {category} has invalid recommended_tier",
                path=source,
            )
        normalized_recs[str(category)] = {
            **rec, "recommended_tier": parse_tier(rec["recommended_tier"]).value,
        }

    return {
        "schema_version": str(version),
        "providers": normalized_providers,
        "tier_recommendations": normalized_recs,
    }


class CapabilityRegistry:
    """Read-only queries over the model capability catalog.

    Lookups return None (or empty collections) for absent data rather than
    raising: not every provider offers every tier. Only a broken catalog or
    an unknown tier name raises.
    """

    def __init__(
        self,
        catalog_path: Optional[Path] = None,
        catalog_data: Optional[Mapping[str, Any]] = None,
    ):
        self.catalog_path = Path(catalog_path) if catalog_path else DEFAULT_CATALOG_PATH
        self._source_data = dict(catalog_data) if catalog_data is not None else None
        self._catalog: Optional[ModelCatalog] = None
        self._loaded_at: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CapabilityRegistry":
        """Build a registry from an in-memory catalog and load it immediately."""
        registry = cls(catalog_data=data)
        registry.load_catalog()
        return registry

    # --- Loading ---

    def load_catalog(self) -> None:
        """Parse and validate the catalog once.

        Raises CatalogError for a missing file, unsupported schema_version or
        any model tagged with a tier outside the tier ladder. Subsequent calls
        after a successful load are no-ops.
        """
        if self._catalog is not None:
            return

        source = None
        if self._source_data is not None:
            raw = self._source_data
        else:
            source = str(self.catalog_path)
            if not self.catalog_path.exists():
                raise CatalogError("Catalog file not found", path=source)
            try:
                with open(self.catalog_path) as f:
                    raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise CatalogError(f"Cannot parse catalog YAML: {e}", path=source) from e

        normalized = _validate_raw_catalog(raw, source)
        try:
            catalog = ModelCatalog(**normalized)
        except ValidationError as e:
            raise CatalogError(f"Catalog failed validation: {e}", path=source) from e

        self._catalog = catalog
        self._loaded_at = time.time()
        logger.debug(
            f"Loaded capability catalog ({len(catalog.providers)} providers, "
            f"schema {catalog.schema_version}) from {source or 'memory'}"
        )

    def reload(self) -> None:
        """Drop the loaded snapshot and load again from the source."""
        self._catalog = None
        self._loaded_at = None
        self.load_catalog()

    def is_stale(self, max_age_seconds: float = 3600) -> bool:
        """True when the catalog file changed since load or the snapshot is old."""
        if self._loaded_at is None:
            return True
        if self._source_data is not None:
            return False
        if not self.catalog_path.exists():
            return True
        file_mtime = self.catalog_path.stat().st_mtime
        return file_mtime > self._loaded_at or (time.time() - self._loaded_at) > max_age_seconds

    @property
    def catalog(self) -> ModelCatalog:
        if self._catalog is None:
            self.load_catalog()
        return self._catalog

    @property
    def schema_version(self) -> str:
        return self.catalog.schema_version

    # --- Provider / model lookups ---

    @property
    def provider_names(self) -> List[str]:
        return list(self.catalog.providers)

    def _provider(self, provider: str) -> Optional[ProviderEntry]:
        return self.catalog.providers.get(provider)

    def models_for_provider(self, provider: str) -> Dict[str, Dict[str, Any]]:
        entry = self._provider(provider)
        if entry is None:
            return {}
        return {name: model.metadata() for name, model in entry.models.items()}

    def model_info(self, provider: str, model: str) -> Optional[Dict[str, Any]]:
        entry = self._provider(provider)
        if entry is None or model not in entry.models:
            return None
        return entry.models[model].metadata()

    def provider_display_name(self, provider: str) -> str:
        entry = self._provider(provider)
        if entry is None or not entry.display_name:
            return provider
        return entry.display_name

    def tier_for_model(self, provider: str, model: str) -> Optional[Tier]:
        """Reverse lookup; None for unknown provider/model pairs."""
        entry = self._provider(provider)
        if entry is None or model not in entry.models:
            return None
        return entry.models[model].tier

    def models_by_tier(self, tier: TierLike, provider: Optional[str] = None) -> Dict[str, List[str]]:
        """{provider: [model, ...]} for every model at exactly *tier*."""
        tier = parse_tier(tier)
        providers = [provider] if provider else self.provider_names
        results: Dict[str, List[str]] = {}
        for name in providers:
            entry = self._provider(name)
            if entry is None:
                continue
            matching = [m for m, data in entry.models.items() if data.tier == tier]
            if matching:
                results[name] = matching
        return results

    def supported_tiers(self, provider: str) -> List[Tier]:
        entry = self._provider(provider)
        if entry is None:
            return []
        tiers = {data.tier for data in entry.models.values()}
        return sorted(tiers, key=tier_ordinal)

    def best_model_for_tier(
        self,
        tier: TierLike,
        provider: str,
        allowed_models: Optional[Iterable[str]] = None,
    ) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Cheapest model of *provider* at exactly *tier*.

        Ties (equal cost) keep catalog declaration order; models without a
        cost_per_mtok_input rank after priced ones. *allowed_models*, when
        given, restricts the candidates.
        """
        tier = parse_tier(tier)
        entry = self._provider(provider)
        if entry is None:
            return None

        allowed = set(allowed_models) if allowed_models is not None else None
        candidates = [
            (index, name, data)
            for index, (name, data) in enumerate(entry.models.items())
            if data.tier == tier and (allowed is None or name in allowed)
        ]
        if not candidates:
            return None

        def _rank(candidate):
            index, _, data = candidate
            cost = data.cost_per_mtok_input
            return (cost is None, cost if cost is not None else 0.0, index)

        _, name, data = min(candidates, key=_rank)
        return name, data.metadata()

    def providers_offering(
        self,
        tier: TierLike,
        providers: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """Providers with at least one model at *tier*, in catalog order.

        When *providers* is given, only those names are considered.
        """
        tier = parse_tier(tier)
        wanted = set(providers) if providers is not None else None
        return [
            name
            for name, entry in self.catalog.providers.items()
            if (wanted is None or name in wanted)
            and any(data.tier == tier for data in entry.models.values())
        ]

    # --- Recommendations ---

    @property
    def tier_recommendations(self) -> Dict[str, TierRecommendation]:
        return dict(self.catalog.tier_recommendations)

    def recommend_tier(self, complexity_score: float) -> Tier:
        """Map a complexity score to a tier via tier_recommendations.

        Entries are scanned by ascending threshold; the last one whose
        threshold the score meets wins. Below every threshold (or with no
        recommendations at all) the lowest tier is returned.
        """
        ordered = sorted(
            self.catalog.tier_recommendations.values(),
            key=lambda rec: rec.complexity_threshold,
        )
        recommended = LOWEST_TIER
        for rec in ordered:
            if complexity_score >= rec.complexity_threshold:
                recommended = rec.recommended_tier
        return recommended

    # --- Display ---

    def export_for_display(self) -> Dict[str, Any]:
        """Structured catalog dump for the CLI."""
        return {
            "schema_version": self.catalog.schema_version,
            "providers": [
                {
                    "name": name,
                    "display_name": self.provider_display_name(name),
                    "tiers": [t.value for t in self.supported_tiers(name)],
                    "models": self.models_for_provider(name),
                }
                for name in self.provider_names
            ],
            "tier_order": [t.value for t in TIER_ORDER],
        }
