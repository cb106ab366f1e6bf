"""Budget evaluation for collected vitals."""

from vitalsguard.evaluation.budget import (
    BudgetViolation,
    check_budget_violations,
    find_budget_violations,
)

__all__ = ["BudgetViolation", "check_budget_violations", "find_budget_violations"]
