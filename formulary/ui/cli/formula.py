"""
CLI commands for browsing and checking formulas.

Thin wrappers over the formula store and loader.
"""

from __future__ import annotations

import json
import sys

import click

from formulary.ui.cli import _common


@click.group()
def formula() -> None:
    """Formulas — list, info, check."""


@formula.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_formulas(ctx: click.Context, as_json: bool) -> None:
    """List every formula with its versions."""
    store = _common.get_store(ctx).store

    rows = [
        {
            "name": name,
            "versions": store.versions(name),
            "latest": store.resolve(name).version,
            "aliases": sorted(store.aliases_of(name)),
        }
        for name in store.names()
    ]

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        click.secho("⚠️  No formulas found", fg="yellow")
        return

    click.secho(f"📦 Formulas ({len(rows)}):", fg="cyan", bold=True)
    for row in rows:
        alias = f"  (alias: {', '.join(row['aliases'])})" if row["aliases"] else ""
        click.echo(f"   {row['name']:<20} {row['latest']:<10}{alias}")


@formula.command()
@click.argument("name")
@click.option("--version", "version", default=None, help="Specific version (default: latest).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, name: str, version: str | None, as_json: bool) -> None:
    """Show one formula record and the build it implies."""
    from formulary.adapters.toolchain.go import go_build_command
    from formulary.core.errors import StoreError
    from formulary.core.services.build import build_flags

    store = _common.get_store(ctx).store
    try:
        record = store.resolve(name, version)
    except StoreError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    aliases = sorted(store.aliases_of(record.name))
    command = go_build_command(build_flags(record), _common.get_settings(ctx).prefix_path / record.name)

    if as_json:
        data = record.model_dump(mode="json")
        data["aliases"] = aliases
        data["build_command"] = command
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"\n📦 {record.name} {record.version}", fg="cyan", bold=True)
    click.echo(f"   {record.description}")
    click.echo(f"   🏠 {record.homepage}")
    if record.license:
        click.echo(f"   ⚖️  {record.license}")
    click.echo(f"   Source:    {record.source_url}")
    click.echo(f"   sha256:    {record.checksum}")
    if record.build_commit:
        click.echo(f"   Commit:    {record.build_commit}")
    if record.build_date:
        click.echo(f"   Date:      {record.build_date}")
    click.echo(f"   Livecheck: {record.livecheck_strategy.value}")
    if record.build_dependencies:
        click.echo(f"   Build deps: {', '.join(record.build_dependencies)}")
    if record.runtime_dependencies:
        click.echo(f"   Run deps:   {', '.join(record.runtime_dependencies)}")
    if aliases:
        click.echo(f"   Aliases:   {', '.join(aliases)}")
    click.echo(f"   Test:      {record.name} {' '.join(record.verification.args)}"
               f"  → expects {record.expected_output!r}")
    click.echo(f"   Build:     {' '.join(command)}")
    click.echo()


@formula.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Validate every formula file and report conflicts."""
    ctx.obj["quiet"] = True
    result = _common.get_store(ctx)
    store = result.store

    aliases = {
        name: sorted(store.aliases_of(name))
        for name in store.names()
        if store.aliases_of(name)
    }

    if as_json:
        click.echo(json.dumps({
            "ok": result.ok,
            "files": len(result.files),
            "records": len(store),
            "issues": [i.to_dict() for i in result.issues],
            "aliases": aliases,
        }, indent=2))
        sys.exit(0 if result.ok else 1)

    if result.ok:
        click.secho("✅ All formulas valid", fg="green", bold=True)
    else:
        click.secho(f"❌ {len(result.issues)} problem(s):", fg="red", bold=True)
        for issue in result.issues:
            label = f"{issue.name} {issue.version}".strip()
            click.echo(f"   • [{issue.kind}] {issue.path.name}: {label}")
            click.echo(f"     {issue.error}")

    click.echo(f"   Files:   {len(result.files)}")
    click.echo(f"   Records: {len(store)}")
    for name, names in aliases.items():
        click.echo(f"   🔗 {name} ↔ {', '.join(names)}")

    if not result.ok:
        sys.exit(1)
