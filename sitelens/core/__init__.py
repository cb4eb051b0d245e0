# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no external dependencies.

This module contains:
- Domain and report models (Event, Session, Touchpoint, reports)
- Sessionization (timeout-based session boundaries)
- Touchpoint classification and path normalization
- Attribution, journey, retention and form funnel engines

All code here is framework-agnostic, stateless and easily unit-testable.
"""

from sitelens.core.attribution import AttributionEngine
from sitelens.core.forms import FormFunnelAnalyzer
from sitelens.core.journeys import JourneyGraphBuilder
from sitelens.core.models import (
    AttributionReport,
    CohortData,
    DashboardReport,
    Event,
    FormReport,
    JourneyEdge,
    JourneyReport,
    RetentionReport,
    Session,
    Touchpoint,
)
from sitelens.core.retention import RetentionCohortEngine
from sitelens.core.sessionizer import Sessionizer
from sitelens.core.touchpoints import classify, normalize_path

__all__ = [
    "AttributionEngine",
    "AttributionReport",
    "CohortData",
    "DashboardReport",
    "Event",
    "FormFunnelAnalyzer",
    "FormReport",
    "JourneyEdge",
    "JourneyGraphBuilder",
    "JourneyReport",
    "RetentionCohortEngine",
    "RetentionReport",
    "Session",
    "Sessionizer",
    "Touchpoint",
    "classify",
    "normalize_path",
]
