"""Translate harness errors into operator-facing messages."""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Optional[Exception]
    title: str
    explanation: str
    actions: List[str] = field(default_factory=list)
    documentation: Optional[str] = None
    show_technical: bool = False


class TierUnavailableError(Exception):
    """Carrier for the 'no model for this tier' report.

    Never raised by the engine itself; the outer loop builds it when
    select_model_for_tier returns None at the ceiling and it wants a
    printable explanation.
    """

    def __init__(self, tier: str, providers: Iterable[str]):
        self.tier = str(tier)
        self.providers = [str(p) for p in providers]
        attempted = ", ".join(self.providers) if self.providers else "none"
        super().__init__(f"No model available for tier '{self.tier}' (providers tried: {attempted})")


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"CatalogError: .*schema_version": {
            "title": "Unsupported model catalog version",
            "explanation": "The capability catalog declares a schema version this harness cannot read. The catalog is rejected as a whole.",
            "actions": [
                "Check schema_version at the top of the catalog file",
                "Regenerate the catalog from config/models_catalog.yaml",
            ],
            "documentation": "config/models_catalog.yaml",
        },

        r"CatalogError: .*(invalid tier|missing 'tier')": {
            "title": "Model catalog has an unknown tier",
            "explanation": "A model in the capability catalog is tagged with a tier outside mini, standard, thinking, pro, max.",
            "actions": [
                "Fix the tier value of the model named in the details",
                "List the catalog: harness models",
            ],
            "documentation": "config/models_catalog.yaml",
        },

        r"CatalogError": {
            "title": "Model catalog could not be loaded",
            "explanation": "The capability catalog is missing or malformed, so no tier can be resolved to a model.",
            "actions": [
                "Verify the catalog path (--catalog or catalog_path in config)",
                "Validate the YAML syntax of the catalog file",
            ],
        },

        r"InvalidTierError": {
            "title": "Unknown thinking tier",
            "explanation": "A tier name was given that is not part of the tier ladder.",
            "actions": [
                "Use one of: mini, standard, thinking, pro, max",
                "Check default_tier, max_tier and overrides in the config",
            ],
        },

        r"ConfigError": {
            "title": "Invalid harness configuration",
            "explanation": "The configuration file failed validation.",
            "actions": [
                "Fix the field named in the details",
                "Compare against config/harness.yaml",
            ],
            "documentation": "config/harness.yaml",
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        if isinstance(error, TierUnavailableError):
            return self.tier_unavailable(error.tier, error.providers, error=error)

        full_error = f"{type(error).__name__}: {error}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=list(translation["actions"]),
                    documentation=translation.get("documentation"),
                    show_technical=True,
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=["Check logs for details"],
            show_technical=True,
        )

    def tier_unavailable(
        self,
        tier: str,
        providers: Iterable[str],
        error: Optional[Exception] = None,
    ) -> UserFriendlyError:
        """Report that no attempted provider offers a model at *tier*."""
        attempted = [str(p) for p in providers]
        explanation = f"No model is configured for the '{tier}' tier."
        if attempted:
            explanation += f" Providers attempted: {', '.join(attempted)}."
        else:
            explanation += " No provider was eligible for the lookup."
        return UserFriendlyError(
            original_error=error,
            title=f"No model available for tier '{tier}'",
            explanation=explanation,
            actions=[
                f"Add a model with tier '{tier}' to the capability catalog",
                f"Pin a model under providers[].thinking_tiers.{tier} in the config",
                "Enable thinking.allow_provider_switch to let another provider serve the tier",
                f"Lower thinking.max_tier below '{tier}'",
            ],
            documentation="config/harness.yaml",
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.documentation:
            output += f"\n[dim]See: {friendly_error.documentation}[/]"

        if friendly_error.show_technical and friendly_error.original_error is not None:
            output += f"\n\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
