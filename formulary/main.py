"""
Formulary — CLI entrypoint.

Usage:
    formulary --help
    formulary formula list
    formulary livecheck
    formulary install zipcmt
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from formulary import __version__
from formulary.core.observability.logging_config import setup_logging
from formulary.ui.cli import _common


@click.group()
@click.version_option(version=__version__, prog_name="formulary")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to formulary.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Formulary — fetch, verify, build and smoke-test formulas."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None  # FORMULARY_LOG_LEVEL or WARNING

    setup_logging(level=level)


# ── Livecheck ───────────────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--retry", "retry_only", is_flag=True, help="Only re-check formulas due for retry.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def livecheck(ctx: click.Context, names: tuple[str, ...], retry_only: bool, as_json: bool) -> None:
    """Check upstream for newer releases of formulas."""
    from formulary.core.errors import StoreError

    settings = _common.get_settings(ctx)
    store = _common.get_store(ctx).store
    resolver = _common.make_resolver(settings)

    if retry_only and resolver.retry_queue is not None:
        names = tuple(item.name for item in resolver.retry_queue.dequeue_ready())

    try:
        records = [store.resolve(n) for n in names] if names or retry_only else store.latest()
    except StoreError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    results = resolver.check_many(records)

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return

    if not results:
        click.secho("✅ Nothing to check", fg="green")
        return

    click.secho("🔎 Livecheck:", fg="cyan", bold=True)
    for r in results:
        if r.error:
            click.secho(f"   ⚠️  {r.name:<20} {r.version:<10} upstream unavailable: {r.error}", fg="yellow")
        elif r.check is not None and r.check.skipped:
            click.echo(f"   ⏭️  {r.name:<20} {r.version:<10} skipped")
        elif r.check is not None and r.check.is_stale:
            click.secho(f"   ⬆️  {r.name:<20} {r.version:<10} → {r.check.upstream}", fg="yellow")
        else:
            click.echo(f"   ✅ {r.name:<20} {r.version:<10} up to date")


# ── Install / verify ────────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--version", "version", default=None, help="Install this version instead of the latest.")
@click.option("--prefix", type=click.Path(file_okay=False), default=None, help="Install directory.")
@click.option("--jobs", "-j", type=int, default=None, help="Formulas built in parallel.")
@click.option("--keep-unverified", is_flag=True, help="Keep binaries that fail verification.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    names: tuple[str, ...],
    version: str | None,
    prefix: str | None,
    jobs: int | None,
    keep_unverified: bool,
    as_json: bool,
) -> None:
    """Fetch, verify, build and smoke-test formulas."""
    settings = _common.get_settings(ctx)
    store = _common.get_store(ctx).store
    installer = _common.make_installer(
        settings, Path(prefix) if prefix else None, keep_unverified, store,
    )

    reports = installer.install_many(names, version=version, jobs=jobs or settings.jobs)
    failed = [r for r in reports if not r.ok]

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in reports], indent=2))
        sys.exit(1 if failed else 0)

    for r in reports:
        if r.ok:
            assert r.artifact is not None
            click.secho(f"✅ {r.name} {r.version} → {r.artifact.path}", fg="green")
        else:
            click.secho(f"❌ {r.name}: {r.step} failed", fg="red", bold=True)
            click.echo(f"   {r.error}")

    if failed:
        sys.exit(1)


@cli.command()
@click.argument("name")
@click.option("--prefix", type=click.Path(file_okay=False), default=None, help="Install directory.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, name: str, prefix: str | None, as_json: bool) -> None:
    """Re-run the post-install check of an installed formula."""
    settings = _common.get_settings(ctx)
    store = _common.get_store(ctx).store
    installer = _common.make_installer(settings, Path(prefix) if prefix else None, False, store)

    report = installer.reverify(name)

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        sys.exit(0 if report.ok else 1)

    if report.ok:
        click.secho(f"✅ {name} {report.version} verified", fg="green")
    else:
        click.secho(f"❌ {name}: {report.error}", fg="red")
        sys.exit(1)


# ── History ─────────────────────────────────────────────────────


@cli.command()
@click.option("--limit", "-n", type=int, default=20, help="Entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent install and verify operations."""
    from formulary.core.persistence.audit import AuditWriter

    settings = _common.get_settings(ctx)
    entries = AuditWriter(state_dir=settings.state_path).read_entries(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No operations recorded yet.")
        return

    colors = {"ok": "green", "failed": "red"}
    for e in entries:
        click.echo(f"   {e.timestamp[:19]}  {e.operation:<9} {e.formula} {e.version or ''}  ", nl=False)
        click.secho(e.status, fg=colors.get(e.status, "white"), nl=False)
        click.echo(f"  ({e.step})" if e.status != "ok" else "")


# ── Register sub-groups ─────────────────────────────────────────

from formulary.ui.cli.formula import formula  # noqa: E402

cli.add_command(formula)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
