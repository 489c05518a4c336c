"""Main CLI for the harness: inspect the catalog and tier resolution."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..core.config import load_config
from ..core.tiers import TIER_ORDER, parse_tier
from ..errors import ErrorTranslator, HarnessError
from ..llm.capability_registry import CapabilityRegistry
from ..llm.thinking_depth_manager import ThinkingDepthManager
from ..utils.rich_logging import setup_rich_logging


console = Console()
translator = ErrorTranslator()


def _fail(ctx, error: Exception):
    console.print(translator.format_for_cli(translator.translate(error)))
    ctx.exit(1)


def _manager(ctx) -> ThinkingDepthManager:
    """Build (once per invocation) a manager from --config/--catalog."""
    if "manager" not in ctx.obj:
        config = load_config(ctx.obj["config_path"])
        catalog_path = ctx.obj["catalog_path"] or config.catalog_path
        registry = CapabilityRegistry(catalog_path=catalog_path)
        registry.load_catalog()
        ctx.obj["manager"] = ThinkingDepthManager(
            config, registry=registry, history_sink=ctx.obj["log"].tier_changed
        )
    return ctx.obj["manager"]


@click.group()
@click.option("--config", "-c", "config_path", default="config/harness.yaml", help="Harness config file")
@click.option("--catalog", "catalog_path", default=None, help="Model catalog file (overrides config)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Harness log level",
)
@click.option("--log-dir", default=None, help="Also write logs to this directory")
@click.pass_context
def cli(ctx, config_path, catalog_path, log_level, log_dir):
    """Agent Harness - thinking-depth tiers and model resolution."""
    ctx.ensure_object(dict)
    ctx.obj["log"] = setup_rich_logging(
        "harness", log_level=log_level, log_dir=Path(log_dir) if log_dir else None
    )
    ctx.obj["config_path"] = Path(config_path)
    ctx.obj["catalog_path"] = Path(catalog_path) if catalog_path else None


@cli.command()
@click.option("--tier", "-t", default=None, help="Only models at this tier")
@click.option("--provider", "-p", default=None, help="Only this provider")
@click.pass_context
def models(ctx, tier, provider):
    """List catalog models with their tier and cost."""
    try:
        registry = _manager(ctx).registry
        wanted_tier = parse_tier(tier) if tier else None
    except HarnessError as e:
        _fail(ctx, e)
        return

    table = Table(title=f"Model catalog (schema {registry.schema_version})")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Tier")
    table.add_column("$/Mtok in", justify="right")
    table.add_column("Context", justify="right")

    rows = 0
    for provider_name in registry.provider_names:
        if provider and provider_name != provider:
            continue
        for model_name, info in registry.models_for_provider(provider_name).items():
            if wanted_tier and info["tier"] != wanted_tier.value:
                continue
            cost = info.get("cost_per_mtok_input")
            context_window = info.get("context_window")
            table.add_row(
                registry.provider_display_name(provider_name),
                model_name,
                info["tier"],
                f"{cost:.2f}" if cost is not None else "-",
                f"{context_window:,}" if context_window else "-",
            )
            rows += 1

    if rows == 0:
        console.print("[yellow]No models match the given filters[/]")
        return
    console.print(table)


@cli.command()
@click.pass_context
def tiers(ctx):
    """Show the tier ladder, permissions and which providers serve each tier."""
    try:
        manager = _manager(ctx)
    except HarnessError as e:
        _fail(ctx, e)
        return

    table = Table(title="Thinking tiers")
    table.add_column("Tier")
    table.add_column("Permission")
    table.add_column("Providers")
    table.add_column("Notes")

    for tier in TIER_ORDER:
        notes = []
        if tier == manager.default_tier:
            notes.append("default")
        if tier == manager.max_tier:
            notes.append("max")
        info = manager.tier_info(tier)
        if not info["within_max"]:
            notes.append("above max")
        providers = manager.resolution_candidates(tier)
        table.add_row(
            tier.value,
            manager.configuration.permission_for_tier(tier).value,
            ", ".join(providers) if providers else "[red]none[/]",
            ", ".join(notes),
        )

    console.print(table)


@cli.command()
@click.argument("tier")
@click.option("--provider", "-p", default=None, help="Preferred provider")
@click.option("--fallback", is_flag=True, help="Degrade to neighbouring tiers if needed")
@click.pass_context
def resolve(ctx, tier, provider, fallback):
    """Resolve TIER to a concrete provider/model."""
    try:
        manager = _manager(ctx)
        requested = parse_tier(tier)
        if fallback:
            result = manager.select_model_with_fallback(requested, provider=provider)
        else:
            selection = manager.select_model_for_tier(requested, provider=provider)
            result = (requested, selection) if selection else None
    except HarnessError as e:
        _fail(ctx, e)
        return

    if result is None:
        attempted = manager.resolution_candidates(requested, provider)
        console.print(translator.format_for_cli(translator.tier_unavailable(requested.value, attempted)))
        ctx.exit(1)
        return

    served_tier, selection = result
    ctx.obj["log"].model_selected(selection.provider, selection.model, served_tier.value)
    console.print(
        f"[green]✓[/] {served_tier.value}: [bold]{selection.provider}/{selection.model}[/]"
    )
    if served_tier != requested:
        console.print(f"[yellow]Requested tier {requested.value} unavailable; fell back to {served_tier.value}[/]")
    permission = manager.configuration.permission_for_tier(served_tier)
    console.print(f"  Permission: {permission.value}")


if __name__ == "__main__":
    cli()
