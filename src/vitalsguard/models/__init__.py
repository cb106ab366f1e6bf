"""vitalsguard data models - re-exports the public model classes."""

from vitalsguard.models.budget import BudgetThresholds, merge_budgets
from vitalsguard.models.config import RunConfig, VitalsOptions
from vitalsguard.models.report import (
    BatchResult,
    NetworkReport,
    NetworkRequestRecord,
    NetworkSummary,
    NetworkTiming,
    PerformanceTiming,
    ProfileSummary,
    RunSummary,
    ScenarioReport,
    VitalsMetricSet,
)
from vitalsguard.models.scenario import (
    ClickStep,
    HoverStep,
    NavigateStep,
    Scenario,
    ScenarioStep,
    ScrollStep,
    TypeStep,
    WaitStep,
)

__all__ = [
    "BatchResult",
    "BudgetThresholds",
    "ClickStep",
    "HoverStep",
    "NavigateStep",
    "NetworkReport",
    "NetworkRequestRecord",
    "NetworkSummary",
    "NetworkTiming",
    "PerformanceTiming",
    "ProfileSummary",
    "RunConfig",
    "RunSummary",
    "Scenario",
    "ScenarioReport",
    "ScenarioStep",
    "ScrollStep",
    "TypeStep",
    "VitalsMetricSet",
    "VitalsOptions",
    "WaitStep",
    "merge_budgets",
]
