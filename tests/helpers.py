"""
Test helpers — record and tarball builders shared across test modules.
"""

from __future__ import annotations

import hashlib
import io
import tarfile

from formulary.core.models.formula import FormulaRecord

# The published zipcmt / namzd 1.4.6 tarball digest
ZIPCMT_SHA = "d5558cd419c8d46bdc958064cb97f963d1ea793866414c025906ec15033512ed"
# The second, conflicting digest observed for zipcmt 1.4.6
CONFLICTING_SHA = "1e4d2c9a7b3f5e8d0c6a2b9f4e7d1c3a5b8e0f2d4c6a9b1e3f5d7c0a2b4e60d3"

COMMIT = "4bb4c718fb9825efb22539b9311165837faacddc"
BUILD_DATE = "2026-02-06T20:58:46+11:00"

def source_url(name: str, version: str) -> str:
    return f"https://github.com/bengarrett/{name}/archive/refs/tags/v{version}.tar.gz"

def make_record(name: str = "zipcmt", version: str = "1.4.6", **overrides) -> FormulaRecord:
    """A valid record shaped like the shipped formulas."""
    data = {
        "name": name,
        "description": "Zip Comment, the file comment viewer and extractor",
        "homepage": "https://github.com/bengarrett/zipcmt",
        "source_url": source_url(name, version),
        "checksum": ZIPCMT_SHA,
        "version": version,
        "license": "LGPL-3.0-only",
        "build_commit": COMMIT,
        "build_date": BUILD_DATE,
        "dependencies": [{"name": "go", "stage": "build"}],
    }
    data.update(overrides)
    return FormulaRecord.model_validate(data)

def make_tarball(files: dict[str, str], top: str = "zipcmt-1.4.6") -> bytes:
    """A gzipped tarball with every file under one top-level directory."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for rel, content in files.items():
            payload = content.encode()
            info = tarfile.TarInfo(f"{top}/{rel}")
            info.size = len(payload)
            info.mtime = 0
            tar.addfile(info, io.BytesIO(payload))
    return buf.getvalue()

def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeResponse:
    """Stand-in for what ``urllib.request.urlopen`` returns."""

    def __init__(self, body: bytes = b"", error: Exception | None = None):
        self._body = body
        self._error = error

    def read(self) -> bytes:
        if self._error is not None:
            raise self._error
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False
