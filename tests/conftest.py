"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from formulary.adapters.mock import MockExtractor, MockSourceHost, MockToolchain
from formulary.core.models.formula import FormulaRecord
from tests.helpers import make_record, sha256


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def source_bytes() -> bytes:
    return b"zipcmt source tarball bytes"


@pytest.fixture
def hosted_record(source_bytes: bytes) -> FormulaRecord:
    """A record whose checksum matches ``source_bytes``."""
    return make_record(checksum=sha256(source_bytes))


@pytest.fixture
def host(hosted_record: FormulaRecord, source_bytes: bytes) -> MockSourceHost:
    h = MockSourceHost()
    h.add_file(hosted_record.source_url, source_bytes)
    return h


@pytest.fixture
def extractor() -> MockExtractor:
    return MockExtractor()


@pytest.fixture
def toolchain() -> MockToolchain:
    return MockToolchain()


@pytest.fixture
def prefix(tmp_path: Path) -> Path:
    return tmp_path / "bin"


@pytest.fixture
def formula_dir(tmp_path: Path) -> Path:
    d = tmp_path / "Formula"
    d.mkdir()
    return d


@pytest.fixture
def restore_root_logger():
    """Undo the root-logger changes ``setup_logging`` makes."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    raise_exceptions = logging.raiseExceptions
    yield
    logging.raiseExceptions = raise_exceptions
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
