"""
Tarball extractor — unpack fetched source archives.

Code-forge archives wrap the tree in one top-level directory
(``zipcmt-1.4.6/``); that directory is returned as the source root.

Members that would land outside the destination (absolute paths,
``..`` components, links pointing out) are rejected before anything is
written.
"""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path, PurePosixPath

from formulary.adapters.base import SourceExtractor
from formulary.core.errors import ExtractionError

logger = logging.getLogger(__name__)


class TarballExtractor(SourceExtractor):
    """Extracts ``.tar``, ``.tar.gz``, ``.tar.bz2`` and ``.tar.xz`` archives."""

    def __init__(self, label: str = "source"):
        self._label = label

    def extract(self, data: bytes, dest: Path) -> Path:
        dest.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
                members = tar.getmembers()
                for member in members:
                    _check_member(member)
                tar.extractall(dest, members=members, filter="data")
        except tarfile.TarError as e:
            raise ExtractionError(self._label, f"corrupt archive: {e}") from e
        except ValueError as e:
            raise ExtractionError(self._label, str(e)) from e

        root = _source_root(dest)
        logger.debug("Extracted %d member(s) into %s", len(members), root)
        return root


def _check_member(member: tarfile.TarInfo) -> None:
    path = PurePosixPath(member.name)
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"unsafe path in archive: {member.name}")
    if member.issym() or member.islnk():
        target = PurePosixPath(member.linkname)
        if target.is_absolute() or ".." in (path.parent / target).parts:
            raise ValueError(f"unsafe link in archive: {member.name} -> {member.linkname}")
    if member.isdev():
        raise ValueError(f"device file in archive: {member.name}")


def _source_root(dest: Path) -> Path:
    entries = [p for p in dest.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return dest
