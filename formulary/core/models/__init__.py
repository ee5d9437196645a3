"""
Domain models — pydantic types for formulas.

All models are re-exported here for convenient access:

    from formulary.core.models import FormulaRecord, Version
"""

from formulary.core.models.formula import (
    Dependency,
    DependencyStage,
    FormulaRecord,
    LivecheckStrategy,
    VerificationCommand,
    github_repo,
)
from formulary.core.models.results import (
    Artifact,
    InstallReport,
    LivecheckResult,
    UpdateCheck,
)
from formulary.core.models.version import InvalidVersion, Version

__all__ = [
    # results.py
    "Artifact",
    # formula.py
    "Dependency",
    "DependencyStage",
    "FormulaRecord",
    "InstallReport",
    # version.py
    "InvalidVersion",
    "LivecheckResult",
    "LivecheckStrategy",
    "UpdateCheck",
    "VerificationCommand",
    "Version",
    "github_repo",
]
