"""vitalsguard execution - steps, per-scenario orchestration and batches."""

from vitalsguard.execution.batch import BatchRunner, NoScenariosFoundError, run_guardian
from vitalsguard.execution.orchestrator import ScenarioOrchestrator
from vitalsguard.execution.steps import StepExecutionError, StepExecutor

__all__ = [
    "BatchRunner",
    "NoScenariosFoundError",
    "ScenarioOrchestrator",
    "StepExecutionError",
    "StepExecutor",
    "run_guardian",
]
