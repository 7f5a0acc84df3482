"""
Pipeline package -- OpenFoodFacts TSV to SQLite export.

Re-exports key entry points so callers can do::

    from pipeline import build_database, BuildSummary
"""

from pipeline.builder import BuildSummary, build_database
from pipeline.logging import PipelineLogger, StepReport

__all__ = [
    "build_database",
    "BuildSummary",
    "PipelineLogger",
    "StepReport",
]
