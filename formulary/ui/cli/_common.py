"""
Shared CLI plumbing — settings lookup and service wiring.

Commands stay thin: they call these helpers to get a loaded store and
ready-to-use services, then only format results.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from formulary.core.config.formula_loader import LoadResult, load_store
from formulary.core.config.settings import Settings, load_settings
from formulary.core.errors import ConfigError


def get_settings(ctx: click.Context) -> Settings:
    """Settings for this invocation, loaded once and cached on the context."""
    settings = ctx.obj.get("settings")
    if settings is None:
        try:
            settings = load_settings(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(2)
        ctx.obj["settings"] = settings
    return settings


def get_store(ctx: click.Context) -> LoadResult:
    """Load the formula directory; load issues are reported, not fatal."""
    result = ctx.obj.get("load_result")
    if result is None:
        settings = get_settings(ctx)
        result = load_store(settings.formula_path)
        ctx.obj["load_result"] = result
        if result.issues and not ctx.obj.get("quiet"):
            for issue in result.issues:
                click.secho(f"⚠️  {issue.path.name}: {issue.error}", fg="yellow", err=True)
    return result


def make_installer(settings: Settings, prefix: Path | None, keep_unverified: bool, store):
    from formulary.adapters import GitHubSourceHost, GoToolchain, TarballExtractor
    from formulary.core.persistence.audit import AuditWriter
    from formulary.core.services.build import BuildOrchestrator
    from formulary.core.services.pipeline import Installer
    from formulary.core.services.verify import InstallVerifier

    builder = BuildOrchestrator(
        GitHubSourceHost(token=settings.github_token),
        TarballExtractor(),
        GoToolchain(),
        fetch_timeout=settings.timeouts.fetch,
        build_timeout=settings.timeouts.build,
    )
    return Installer(
        store,
        builder,
        InstallVerifier(timeout=settings.timeouts.verify),
        prefix or settings.prefix_path,
        audit=AuditWriter(state_dir=settings.state_path),
        keep_unverified=keep_unverified or settings.keep_unverified,
    )


def make_resolver(settings: Settings):
    from formulary.adapters import GitHubSourceHost
    from formulary.core.persistence.audit import AuditWriter
    from formulary.core.reliability.retry_queue import DEFAULT_QUEUE_FILE, RetryQueue
    from formulary.core.services.livecheck import VersionResolver

    queue = RetryQueue(
        settings.state_path / DEFAULT_QUEUE_FILE,
        max_attempts=settings.retry.max_attempts,
        base_delay=settings.retry.base_delay,
        max_delay=settings.retry.max_delay,
    )
    return VersionResolver(
        GitHubSourceHost(token=settings.github_token),
        timeout=settings.timeouts.upstream,
        retry_queue=queue,
        audit=AuditWriter(state_dir=settings.state_path),
    )
