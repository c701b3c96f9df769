"""CLI entry point for chainlock."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chainlock import __version__
from chainlock.config import Settings

console = Console()

ACTION_STYLES = {"allow": "green", "reject": "red", "redirect": "yellow"}


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _fmt_time(timestamp: float | None) -> str:
    if not timestamp:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.version_option(version=__version__, prog_name="chainlock")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="CHAINLOCK_DATA_DIR",
    default=None,
    help="Directory holding the component database.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, log_level: str) -> None:
    """chainlock — quality gate, lock and guarded execution for agent profiles."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    if data_dir is not None:
        settings = replace(settings, data_dir=data_dir)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize chainlock: create the data directory and database."""
    from chainlock.storage import ComponentStore

    settings = _settings(ctx)

    async def _init() -> None:
        async with ComponentStore(settings.db_path):
            pass

    asyncio.run(_init())
    console.print(f"[green]chainlock initialized at {settings.data_dir}[/green]")
    console.print(f"  Database: {settings.db_path}")


@main.command(name="list")
@click.option("--node", "node_id", default=None, help="Only components locked from this node.")
@click.option("--limit", default=50, show_default=True)
@click.pass_context
def list_components(ctx: click.Context, node_id: str | None, limit: int) -> None:
    """List stored locked components."""
    from chainlock.storage import ComponentStore

    settings = _settings(ctx)

    async def _list() -> list[dict[str, Any]]:
        async with ComponentStore(settings.db_path) as store:
            return await store.list_components(original_node_id=node_id, limit=limit)

    rows = asyncio.run(_list())
    if not rows:
        console.print("[dim]No locked components.[/dim]")
        return

    table = Table(title="Locked Components")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Node")
    table.add_column("Domains", style="green")
    table.add_column("Public")
    table.add_column("Uses", justify="right")
    table.add_column("Locked At")

    for row in rows:
        table.add_row(
            row["component_id"],
            row["original_node_id"],
            ", ".join(row["domains"]),
            "yes" if row["is_public"] else "no",
            str(row["usage_count"]),
            _fmt_time(row["locked_at"]),
        )
    console.print(table)


@main.command()
@click.argument("component_id")
@click.pass_context
def show(ctx: click.Context, component_id: str) -> None:
    """Show the frozen contract of a stored component."""
    from chainlock.storage import ComponentStore

    settings = _settings(ctx)

    async def _load() -> dict[str, Any] | None:
        async with ComponentStore(settings.db_path) as store:
            return await store.load_record(component_id)

    record = asyncio.run(_load())
    if record is None:
        console.print(f"[red]Component not found:[/red] {component_id}")
        raise SystemExit(1)

    metadata = record["metadata"]
    snapshot = metadata["context_snapshot"]
    rights = metadata["reusability_rights"]
    usage = record.get("usage") or {}

    console.print(f"[bold cyan]{record['component_id']}[/bold cyan]")
    console.print(f"  Node:         {metadata['original_node_id']}")
    console.print(f"  Locked at:    {_fmt_time(metadata['locked_at'])}")
    console.print(f"  Context hash: {snapshot['context_hash']}")
    console.print(f"  Domains:      {', '.join(snapshot['domains'])}")
    console.print(f"  Expertise:    {snapshot['expertise_level']:.2f}")
    visibility = "public" if rights["is_public"] else "private"
    console.print(f"  License:      {rights['license_type']} ({visibility})")
    console.print(f"  Uses:         {usage.get('usage_count', 0)}")

    if snapshot["limitations"]:
        console.print("\n[bold]Limitations:[/bold]")
        for limitation in snapshot["limitations"]:
            console.print(f"  - {limitation}")

    guarantees = metadata["performance_guarantees"]
    if guarantees:
        table = Table(title="Performance Guarantees")
        table.add_column("Metric", style="cyan")
        table.add_column("Min", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("Confidence", justify="right")
        table.add_column("Samples", justify="right")
        for g in guarantees:
            table.add_row(
                g["metric"],
                "-" if g["min_value"] is None else f"{g['min_value']:.3f}",
                "-" if g["max_value"] is None else f"{g['max_value']:.3f}",
                f"{g['confidence']:.0%}",
                str(g["based_on_samples"]),
            )
        console.print(table)


@main.command()
@click.argument("component_id")
@click.argument("description")
@click.option("--domain", "domains", multiple=True, help="Required domain (repeatable).")
@click.option("--complexity", type=click.IntRange(1, 10), default=1, show_default=True)
@click.pass_context
def check(
    ctx: click.Context,
    component_id: str,
    description: str,
    domains: tuple[str, ...],
    complexity: int,
) -> None:
    """Run the rule-based guard of a stored component against a task."""
    from chainlock.guard import RuleBasedGuard
    from chainlock.models import Task, TaskRequirements
    from chainlock.storage import ComponentStore

    settings = _settings(ctx)

    async def _check() -> Any:
        async with ComponentStore(settings.db_path) as store:
            fingerprint = await store.load_fingerprint(component_id)
        if fingerprint is None:
            return None
        guard = RuleBasedGuard(fingerprint)
        task = Task(
            description=description,
            requirements=TaskRequirements(domains=list(domains), complexity=complexity),
        )
        return await guard.filter(task)

    decision = asyncio.run(_check())
    if decision is None:
        console.print(f"[red]Component not found:[/red] {component_id}")
        raise SystemExit(1)

    style = ACTION_STYLES[decision.action.value]
    console.print(
        f"[bold {style}]{decision.action.value.upper()}[/bold {style}] "
        f"(confidence {decision.confidence:.2f}, match {decision.context_match_score:.0f}/100)"
    )
    console.print(f"  {escape(decision.reasoning)}")
    if decision.missing_capabilities:
        console.print(f"  Missing: {escape(', '.join(decision.missing_capabilities))}")
    if decision.suggested_node_type:
        console.print(f"  Suggested: {decision.suggested_node_type}")


if __name__ == "__main__":
    main()
