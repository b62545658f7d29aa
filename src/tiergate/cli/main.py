"""
Tiergate CLI entry point — read-only inspection of the governance engine.

Commands:
  tiergate check <feature> --tier T   — explain one access decision
  tiergate features --tier T          — every feature and its status
  tiergate tiers                      — tier catalog overview
  tiergate compare <tier> <tier>      — capability and limit deltas
  tiergate recommend --tier T -u k=N  — upgrade recommendation for usage
  tiergate suggest --team N -f F      — starting tier for stated needs
  tiergate config show                — current configuration entries
  tiergate config history [KEY]       — accepted update events
"""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from tiergate import __version__
from tiergate.access.context import ActorContext
from tiergate.access.tiers import (
    TIER_ORDER,
    SubscriptionStatus,
    TierRequirements,
    format_limit,
)
from tiergate.access.usage import StaticUsageOracle
from tiergate.core.constants import VALID_ENVIRONMENTS
from tiergate.runtime.models import UpdateType

console = Console()
err_console = Console(stderr=True)

_TIER_CHOICE = click.Choice([t.value for t in TIER_ORDER])
_STATUS_CHOICE = click.Choice([s.value for s in SubscriptionStatus])
_ENV_CHOICE = click.Choice(sorted(VALID_ENVIRONMENTS))


def _build_engine(
    ctx: click.Context,
    usage_oracle: StaticUsageOracle | None = None,
    environment: str | None = None,
):
    from tiergate.core.config import load_settings
    from tiergate.core.exceptions import ConfigError
    from tiergate.engine import GovernanceEngine

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc
    if environment is not None:
        settings = settings.model_copy(update={"environment": environment})
    return GovernanceEngine(settings, usage_oracle=usage_oracle)


def _parse_usage(pairs: tuple[str, ...]) -> dict[str, int]:
    usage: dict[str, int] = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=COUNT, got {pair!r}", param_hint="--usage")
        try:
            usage[name] = int(raw)
        except ValueError as exc:
            raise click.BadParameter(f"{raw!r} is not an integer", param_hint="--usage") from exc
    return usage


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="tiergate %(version)s")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Engine settings file (TOML).",
)
@click.option(
    "--log-level", default="WARNING", hidden=True, help="Log level for structured logging."
)
@click.option("--log-json", is_flag=True, default=False, hidden=True, help="Emit JSON log lines.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str, log_json: bool) -> None:
    """Tiergate — runtime configuration and tier-based feature governance."""
    from tiergate.core.logging import configure_logging

    configure_logging(level=log_level, json_output=log_json)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


@cli.command("check")
@click.argument("feature_id")
@click.option("--tier", type=_TIER_CHOICE, required=True)
@click.option("--status", type=_STATUS_CHOICE, default="active", show_default=True)
@click.option("--usage", type=int, default=None, help="Current usage of the feature.")
@click.option("--beta", is_flag=True, default=False, help="Treat the actor as a beta participant.")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def check_cmd(
    ctx: click.Context,
    feature_id: str,
    tier: str,
    status: str,
    usage: int | None,
    beta: bool,
    as_json: bool,
) -> None:
    """Explain whether an actor on TIER may use FEATURE_ID."""
    oracle = StaticUsageOracle({feature_id: usage} if usage is not None else None)
    engine = _build_engine(ctx, oracle)
    actor = ActorContext(
        actor_id="cli",
        tier=tier,
        subscription_status=status,
        metadata={"beta_participant": beta},
    )
    result = engine.controller.explain(feature_id, actor)

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        if result["granted"]:
            console.print(f"[green]granted[/green]  {feature_id} ({tier})")
        else:
            console.print(
                f"[red]denied[/red]   {feature_id} ({tier}): [bold]{result['reason']}[/bold]"
            )
            console.print(f"  {result['message']}")
            if result["upgrade_to"]:
                console.print(f"  upgrade to: [cyan]{result['upgrade_to']}[/cyan]")
            for suggestion in result["suggestions"]:
                console.print(f"  • {suggestion}")
        if result["required_by"]:
            console.print(f"  required by: {', '.join(result['required_by'])}")
    if not result["granted"]:
        raise SystemExit(2)


@cli.command("features")
@click.option("--tier", type=_TIER_CHOICE, required=True)
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def features_cmd(ctx: click.Context, tier: str, as_json: bool) -> None:
    """Show every feature and its status for TIER."""
    engine = _build_engine(ctx)
    actor = ActorContext(actor_id="cli", tier=tier)
    decisions = engine.controller.list_features(actor)

    if as_json:
        click.echo(json.dumps({fid: d.to_dict() for fid, d in decisions.items()}, indent=2))
        return

    table = Table(title=f"Features — {tier}")
    table.add_column("Category")
    table.add_column("Feature")
    table.add_column("Status")
    table.add_column("Reason")
    for category, features in engine.registry.by_category().items():
        for feature in features:
            d = decisions[feature.id]
            status = "[green]active[/green]" if d.granted else "[dim]locked[/dim]"
            table.add_row(category.value, feature.id, status, d.reason.value if d.reason else "")
    console.print(table)


@cli.command("tiers")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def tiers_cmd(ctx: click.Context, as_json: bool) -> None:
    """Show the tier catalog."""
    engine = _build_engine(ctx)
    if as_json:
        click.echo(json.dumps([t.to_dict() for t in engine.catalog], indent=2))
        return

    for t in engine.catalog:
        console.print(f"\n[bold]{t.name}[/bold] ({t.level.value}) — {t.pricing.describe()}")
        for name, value in sorted(t.limits.items()):
            console.print(f"  {name:<24} {format_limit(value)}")
    console.print()


@cli.command("compare")
@click.argument("source", type=_TIER_CHOICE)
@click.argument("target", type=_TIER_CHOICE)
@click.pass_context
def compare_cmd(ctx: click.Context, source: str, target: str) -> None:
    """Show what changes going from SOURCE tier to TARGET tier."""
    engine = _build_engine(ctx)
    comparison = engine.catalog.compare(source, target)
    console.print(f"\n[bold]{source} → {target}[/bold]\n")
    for cap in comparison.added_capabilities:
        console.print(f"  [green]+[/green] {cap}")
    for cap in comparison.removed_capabilities:
        console.print(f"  [red]-[/red] {cap}")
    for change in comparison.limit_changes:
        console.print(f"  {change.describe()}")
    for fid in comparison.enabled_features:
        console.print(f"  [green]+[/green] feature {fid}")
    console.print()


@cli.command("recommend")
@click.option("--tier", type=_TIER_CHOICE, required=True)
@click.option("--usage", "-u", "usage_pairs", multiple=True, help="LIMIT=COUNT, repeatable.")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def recommend_cmd(
    ctx: click.Context, tier: str, usage_pairs: tuple[str, ...], as_json: bool
) -> None:
    """Recommend an upgrade for an actor on TIER with the given usage."""
    usage = _parse_usage(usage_pairs)
    engine = _build_engine(ctx)
    rec = engine.recommend_upgrade(ActorContext(actor_id="cli", tier=tier), usage)

    if as_json:
        click.echo(json.dumps(rec.to_dict() if rec else None, indent=2))
        return
    if rec is None:
        console.print("No upgrade recommended.")
        return
    console.print(
        f"Recommend [bold cyan]{rec.recommended_tier.value}[/bold cyan] "
        f"({rec.pricing}): {rec.rationale}"
    )
    for benefit in rec.benefits:
        console.print(f"  • {benefit}")


@cli.command("suggest")
@click.option("--team", "team_members", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--feature", "-f", "features", multiple=True, help="Feature id, repeatable.")
@click.option("--capability", "-c", "capabilities", multiple=True, help="Repeatable.")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def suggest_cmd(
    ctx: click.Context,
    team_members: int,
    features: tuple[str, ...],
    capabilities: tuple[str, ...],
    as_json: bool,
) -> None:
    """Suggest a starting tier for a team size and the features it needs."""
    engine = _build_engine(ctx)
    rec = engine.catalog.recommend_for(
        TierRequirements(team_members=team_members, features=features, capabilities=capabilities)
    )

    if as_json:
        click.echo(json.dumps(rec.to_dict(), indent=2))
        return
    console.print(f"Suggested tier: [bold cyan]{rec.recommended.value}[/bold cyan]")
    if rec.alternatives:
        console.print(f"  also fits: {', '.join(t.value for t in rec.alternatives)}")
    for reason in rec.reasons:
        console.print(f"  • {reason}")


# ---------------------------------------------------------------------------
# Configuration store
# ---------------------------------------------------------------------------


@cli.group("config")
def config_group() -> None:
    """Inspect the runtime configuration store."""


@config_group.command("show")
@click.option("--category", default=None, help="Only entries in this category.")
@click.option(
    "--env", "environment", type=_ENV_CHOICE, default=None, help="Override the environment."
)
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def config_show(
    ctx: click.Context, category: str | None, environment: str | None, as_json: bool
) -> None:
    """Show configuration entries after defaults and environment preset."""
    engine = _build_engine(ctx, environment=environment)
    if category is not None and category not in engine.store.categories():
        known = ", ".join(engine.store.categories())
        err_console.print(f"[red]Error:[/red] unknown category {category!r} (known: {known})")
        raise SystemExit(1)
    entries = [engine.store.get_entry(k) for k in engine.store.keys()]
    rows = [e for e in entries if e is not None and (category is None or e.category == category)]

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in rows], indent=2))
        return

    table = Table(title=f"Configuration — {engine.store.environment}")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Category")
    table.add_column("v", justify="right")
    for e in rows:
        table.add_row(e.key, json.dumps(e.value), e.category, str(e.version))
    console.print(table)


@config_group.command("history")
@click.argument("key", required=False)
@click.pass_context
def config_history(ctx: click.Context, key: str | None) -> None:
    """Show accepted update events, optionally for one KEY."""
    engine = _build_engine(ctx)
    for ev in engine.store.history(key):
        if ev.type is UpdateType.CREATE and key is None:
            continue
        console.print(
            f"{ev.timestamp}  {ev.type.value:<8} {ev.key or '*':<40} "
            f"v{ev.version}  by {ev.actor}  {ev.reason or ''}"
        )
