"""
Adapters — the pipeline's collaborators: source host, extractor, toolchain.

    from formulary.adapters import GitHubSourceHost, GoToolchain, TarballExtractor
"""

from formulary.adapters.archive import TarballExtractor
from formulary.adapters.base import (
    ProcessResult,
    Release,
    SourceExtractor,
    SourceHost,
    Toolchain,
)
from formulary.adapters.forge.github import GitHubSourceHost
from formulary.adapters.toolchain.go import GoToolchain, go_build_command

__all__ = [
    "GitHubSourceHost",
    "GoToolchain",
    "ProcessResult",
    "Release",
    "SourceExtractor",
    "SourceHost",
    "TarballExtractor",
    "Toolchain",
    "go_build_command",
]
