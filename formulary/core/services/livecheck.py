"""
Livecheck — compare a formula's declared version against upstream.

Strategies:

    latest-release-tag   highest published release (drafts and releases
                         the host flags as pre-release are ignored)
    highest-tag          highest plain git tag
    skip                 no upstream query

Tags are parsed as semantic versions (``v`` prefix allowed); tags that
do not parse are simply not candidates. The result is advisory: the
store is never modified.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from formulary.adapters.base import SourceHost
from formulary.core.errors import UpstreamUnavailable
from formulary.core.models.formula import FormulaRecord, LivecheckStrategy
from formulary.core.models.results import LivecheckResult, UpdateCheck
from formulary.core.models.version import Version
from formulary.core.persistence.audit import AuditEntry, AuditWriter
from formulary.core.reliability.retry_queue import RetryQueue

logger = logging.getLogger(__name__)


def highest_version(tags: Iterable[str]) -> tuple[str, Version] | None:
    """The highest parseable tag, as ``(tag, version)``; None if none parse."""
    best: tuple[str, Version] | None = None
    for tag in tags:
        version = Version.try_parse(tag)
        if version is None:
            logger.debug("Ignoring non-version tag %r", tag)
            continue
        if best is None or version > best[1]:
            best = (tag, version)
    return best


class VersionResolver:
    """Polls the source host for newer releases."""

    def __init__(
        self,
        source_host: SourceHost,
        *,
        timeout: float = 15.0,
        retry_queue: RetryQueue | None = None,
        audit: AuditWriter | None = None,
    ):
        self.source_host = source_host
        self.timeout = timeout
        self.retry_queue = retry_queue
        self.audit = audit

    def check_for_update(self, record: FormulaRecord) -> UpdateCheck:
        """Compare ``record.version`` with the newest upstream release.

        Raises:
            UpstreamUnavailable: The host could not be queried, or it
                listed nothing that parses as a version.
        """
        strategy = record.livecheck_strategy
        if strategy == LivecheckStrategy.SKIP:
            return UpdateCheck(name=record.name, current=record.version, skipped=True)

        repo = record.upstream_repo
        if repo is None:
            raise UpstreamUnavailable(record.name, "no upstream repository derivable from URLs")

        try:
            if strategy == LivecheckStrategy.LATEST_RELEASE_TAG:
                tags = [
                    r.tag
                    for r in self.source_host.list_releases(repo, self.timeout)
                    if not r.draft and not r.prerelease
                ]
            else:
                tags = self.source_host.list_tags(repo, self.timeout)
        except UpstreamUnavailable as e:
            raise UpstreamUnavailable(record.name, e.reason) from e

        best = highest_version(tags)
        if best is None:
            raise UpstreamUnavailable(record.name, f"no version tags found for {repo}")

        tag, upstream = best
        is_stale = upstream > record.parsed_version
        logger.info(
            "Livecheck %s: declared %s, upstream %s%s",
            record.name, record.version, tag, " (outdated)" if is_stale else "",
        )
        return UpdateCheck(
            name=record.name,
            current=record.version,
            upstream=str(upstream),
            is_stale=is_stale,
        )

    def check_many(self, records: Iterable[FormulaRecord]) -> list[LivecheckResult]:
        """Check every record; an unreachable upstream only affects its own record."""
        results: list[LivecheckResult] = []
        for record in records:
            try:
                check = self.check_for_update(record)
            except UpstreamUnavailable as e:
                logger.warning("Livecheck skipped for %s: %s", record.name, e.reason)
                if self.retry_queue is not None:
                    self.retry_queue.enqueue(record.name, record.version, e.reason)
                result = LivecheckResult(name=record.name, version=record.version, error=e.reason)
            else:
                if self.retry_queue is not None:
                    self.retry_queue.complete(record.name)
                result = LivecheckResult(name=record.name, version=record.version, check=check)

            self._audit(result)
            results.append(result)
        return results

    def _audit(self, result: LivecheckResult) -> None:
        if self.audit is None:
            return
        if result.error:
            status = "failed"
        elif result.check is not None and result.check.skipped:
            status = "skipped"
        else:
            status = "ok"
        context = {}
        if result.check is not None and not result.check.skipped:
            context = {"upstream": result.check.upstream, "is_stale": result.check.is_stale}
        self.audit.write(AuditEntry(
            operation="livecheck",
            formula=result.name,
            version=result.version,
            status=status,
            step="livecheck",
            error=result.error,
            context=context,
        ))
