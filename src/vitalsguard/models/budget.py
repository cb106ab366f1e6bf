"""Budget thresholds for Core Web Vitals metrics.

A budget is a ceiling per metric kind. Budgets come from two places,
the global run configuration and the scenario file, and are merged
key by key with the scenario winning.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# Recognised metric kinds, in report order.
METRIC_NAMES: tuple[str, ...] = ("FCP", "LCP", "FID", "CLS", "INP", "TTFB")

# Metrics expressed in milliseconds (CLS is a unitless score).
MILLISECOND_METRICS: frozenset[str] = frozenset({"FCP", "LCP", "FID", "INP", "TTFB"})


class BudgetThresholds(BaseModel):
    """Upper bounds for each metric kind. Unset metrics are unbudgeted."""

    model_config = {"extra": "forbid", "populate_by_name": True, "frozen": True}

    fcp: float | None = Field(default=None, alias="FCP", ge=0)
    lcp: float | None = Field(default=None, alias="LCP", ge=0)
    fid: float | None = Field(default=None, alias="FID", ge=0)
    cls: float | None = Field(default=None, alias="CLS", ge=0)
    inp: float | None = Field(default=None, alias="INP", ge=0)
    ttfb: float | None = Field(default=None, alias="TTFB", ge=0)

    def as_dict(self) -> dict[str, float]:
        """Return only the configured ceilings, keyed by metric name."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def get(self, metric: str) -> float | None:
        """Look up the ceiling for a metric name such as ``"LCP"``."""
        return getattr(self, metric.lower(), None)


def merge_budgets(
    global_budgets: BudgetThresholds | None,
    scenario_budgets: BudgetThresholds | None,
) -> BudgetThresholds:
    """Merge global and scenario budgets, scenario values winning per key.

    Args:
        global_budgets: Budgets from the run configuration.
        scenario_budgets: Budgets declared by the scenario file.

    Returns:
        A new BudgetThresholds holding the union of both sources.
    """
    merged: dict[str, float] = {}
    if global_budgets is not None:
        merged.update(global_budgets.as_dict())
    if scenario_budgets is not None:
        merged.update(scenario_budgets.as_dict())
    return BudgetThresholds.model_validate(merged)
