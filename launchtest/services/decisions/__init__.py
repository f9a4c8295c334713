"""
Decision orchestration for launch test runs.

This module provides:
- Full decision analysis over raw per-variant counts (``analyze_variants``)
- The repository interface and its SQLAlchemy adapter for decision records
- ``DecisionService`` for creating, updating and finalizing decisions
"""

from launchtest.services.decisions.analysis import analyze_variants, build_variant_metrics
from launchtest.services.decisions.repository import (
    DecisionFinalizedError,
    DecisionRepository,
    SqlAlchemyDecisionRepository,
)
from launchtest.services.decisions.service import DecisionService, decision_service_scope

__all__ = [
    "analyze_variants",
    "build_variant_metrics",
    "DecisionRepository",
    "SqlAlchemyDecisionRepository",
    "DecisionFinalizedError",
    "DecisionService",
    "decision_service_scope",
]
