"""Budget evaluator -- flags metrics whose observed value exceeds a ceiling."""

from __future__ import annotations

from pydantic import BaseModel

from vitalsguard.models.budget import METRIC_NAMES, MILLISECOND_METRICS, BudgetThresholds
from vitalsguard.models.report import VitalsMetricSet


def _format_value(value: float) -> str:
    rounded = round(value, 3)
    return str(int(rounded)) if rounded.is_integer() else str(rounded)


class BudgetViolation(BaseModel):
    """One metric over its ceiling."""

    model_config = {"frozen": True}

    metric: str
    observed: float
    ceiling: float

    @property
    def message(self) -> str:
        unit = "ms" if self.metric in MILLISECOND_METRICS else ""
        return f"{self.metric}: {_format_value(self.observed)}{unit} > {_format_value(self.ceiling)}{unit}"


def find_budget_violations(
    metrics: VitalsMetricSet, budgets: BudgetThresholds
) -> list[BudgetViolation]:
    """Compare each recognised metric against its ceiling.

    A metric produces a violation only when both an observed value and a
    ceiling exist and the value is strictly greater than the ceiling.
    """
    violations = []
    for metric in METRIC_NAMES:
        observed = metrics.get(metric)
        ceiling = budgets.get(metric)
        if observed is not None and ceiling is not None and observed > ceiling:
            violations.append(BudgetViolation(metric=metric, observed=observed, ceiling=ceiling))
    return violations


def check_budget_violations(metrics: VitalsMetricSet, budgets: BudgetThresholds) -> list[str]:
    """Violation messages such as ``"FCP: 2000ms > 1800ms"``."""
    return [v.message for v in find_budget_violations(metrics, budgets)]
