"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from ..errors.exceptions import ConfigError
from .tiers import PermissionLevel, Tier, TierLike, compare_tiers, parse_tier

logger = logging.getLogger(__name__)


def _coerce_tier(value: Any) -> Any:
    """Accept tier names case-insensitively; leave anything else for pydantic to reject."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


class EscalationConfig(BaseModel):
    """When the work loop should consider escalating."""
    on_fail_attempts: int = 2
    # Metric name -> threshold (e.g. files_changed: 5). Empty disables complexity escalation.
    on_complexity_threshold: Dict[str, int] = Field(default_factory=dict)

    @field_validator('on_fail_attempts')
    @classmethod
    def validate_fail_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"on_fail_attempts must be >= 1, got {v}")
        return v

    @field_validator('on_complexity_threshold')
    @classmethod
    def validate_thresholds(cls, v: Dict[str, int]) -> Dict[str, int]:
        for metric, threshold in v.items():
            if threshold < 0:
                raise ValueError(
                    f"Complexity threshold for '{metric}' must be >= 0, got {threshold}"
                )
        return v


class AutonomousEscalationConfig(BaseModel):
    """Escalation gates for unattended runs (watch mode, work loops)."""
    min_attempts_per_model: int = 2
    min_total_attempts: int = 10
    retry_failed_models: bool = True

    @field_validator('min_attempts_per_model', 'min_total_attempts')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"attempt thresholds must be >= 1, got {v}")
        return v


class ProviderConfig(BaseModel):
    """A provider the operator allows the harness to use."""
    name: str
    # Allowed catalog model ids; empty means every catalog model of the provider
    models: List[str] = Field(default_factory=list)
    priority: int = 100  # Lower wins
    # Operator-pinned models per tier, consulted before the catalog
    thinking_tiers: Dict[Tier, List[str]] = Field(default_factory=dict)

    @field_validator('thinking_tiers', mode='before')
    @classmethod
    def normalize_thinking_tiers(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        normalized = {}
        for tier, entry in v.items():
            # Accept both `standard: [a, b]` and `standard: {models: [a, b]}`
            if isinstance(entry, dict):
                entry = entry.get("models") or []
            normalized[_coerce_tier(tier)] = [str(m) for m in entry]
        return normalized


class ThinkingConfig(BaseModel):
    """Thinking-depth policy: tier bounds, escalation and permissions."""
    default_tier: Tier = Tier.MINI
    max_tier: Tier = Tier.PRO
    autonomous_max_tier: Tier = Tier.STANDARD
    allow_provider_switch: bool = True

    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    autonomous_escalation: AutonomousEscalationConfig = Field(
        default_factory=AutonomousEscalationConfig
    )

    permissions_by_tier: Dict[Tier, PermissionLevel] = Field(default_factory=lambda: {
        Tier.MINI: PermissionLevel.SAFE,
        Tier.STANDARD: PermissionLevel.TOOLS,
        Tier.THINKING: PermissionLevel.TOOLS,
        Tier.PRO: PermissionLevel.DANGEROUS,
        Tier.MAX: PermissionLevel.DANGEROUS,
    })

    # Skill/template key -> pinned tier
    overrides: Dict[str, Tier] = Field(default_factory=dict)

    providers: List[ProviderConfig] = Field(default_factory=list)

    @field_validator('default_tier', 'max_tier', 'autonomous_max_tier', mode='before')
    @classmethod
    def normalize_tier(cls, v: Any) -> Any:
        return _coerce_tier(v)

    @field_validator('permissions_by_tier', mode='before')
    @classmethod
    def normalize_permissions(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        return {_coerce_tier(k): _coerce_tier(p) for k, p in v.items()}

    @field_validator('overrides', mode='before')
    @classmethod
    def normalize_overrides(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        return {str(k): _coerce_tier(t) for k, t in v.items()}

    @model_validator(mode='after')
    def validate_tier_bounds(self) -> 'ThinkingConfig':
        if compare_tiers(self.default_tier, self.max_tier) > 0:
            raise ValueError(
                f"default_tier '{self.default_tier}' exceeds max_tier '{self.max_tier}'"
            )
        names = [p.name for p in self.providers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider entries: {', '.join(duplicates)}")
        return self

    def provider(self, name: str) -> Optional[ProviderConfig]:
        for entry in self.providers:
            if entry.name == name:
                return entry
        return None

    def provider_priority_order(self) -> List[str]:
        """Configured provider names, lowest priority rank first.

        sorted() is stable, so equal ranks keep their declaration order.
        """
        return [p.name for p in sorted(self.providers, key=lambda p: p.priority)]

    def allowed_models(self, provider: str) -> Optional[set]:
        """Model allowlist for *provider*, or None when unrestricted."""
        entry = self.provider(provider)
        if entry is None or not entry.models:
            return None
        return set(entry.models)

    def models_for_tier(self, tier: TierLike, provider: str) -> List[str]:
        """Models the operator pinned for *tier* on *provider*."""
        entry = self.provider(provider)
        if entry is None:
            return []
        return list(entry.thinking_tiers.get(parse_tier(tier), []))

    def permission_for_tier(self, tier: TierLike) -> PermissionLevel:
        return self.permissions_by_tier.get(parse_tier(tier), PermissionLevel.TOOLS)

    def tier_override_for(self, key: str) -> Optional[Tier]:
        return self.overrides.get(key)


class HarnessConfig(BaseSettings):
    """Top-level harness configuration."""
    thinking: ThinkingConfig = Field(default_factory=ThinkingConfig)
    catalog_path: Path = Field(default=Path("config/models_catalog.yaml"))
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"log_level must be a standard logging level, got '{v}'")
        return level

    class Config:
        env_prefix = "HARNESS_"
        extra = "ignore"


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> HarnessConfig:
    """Internal loader for harness config (no caching)."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    data = _expand_env_vars(data)
    try:
        config = HarnessConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    # Relative catalog paths are resolved against the config file location
    if not config.catalog_path.is_absolute():
        config.catalog_path = config_path.parent / config.catalog_path

    return config


def load_config(config_path: Path = Path("config/harness.yaml")) -> HarnessConfig:
    """Load harness configuration from YAML file.

    Uses mtime-based caching — returns cached config if the file hasn't changed.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration. "
            "To customize settings, create a config file at this path."
        )
        return HarnessConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else HarnessConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ${VAR} references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "thinking.max_tier")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
