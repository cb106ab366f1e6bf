"""Scenario data models for vitalsguard scenario files.

These models encode the user-facing YAML/JSON contract for a browser
scenario: the start URL, the scripted steps to perform, and optional
budget overrides and template variables.

Steps form a tagged union on ``type``. Each variant carries only the
fields it needs, so a step with an unknown tag or a missing required
field fails when the scenario is built, before any browser action.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from vitalsguard.models.budget import BudgetThresholds

DEFAULT_STEP_TIMEOUT_MS = 30_000
DEFAULT_WAIT_MS = 1_000

_STEP_CONFIG = {"extra": "forbid", "populate_by_name": True, "frozen": True}


class NavigateStep(BaseModel):
    """Load a URL and wait for the network to settle."""

    model_config = _STEP_CONFIG

    type: Literal["navigate"] = "navigate"
    url: str = Field(min_length=1)
    timeout: int | None = Field(default=None, gt=0)


class ClickStep(BaseModel):
    """Click the element matching a selector."""

    model_config = _STEP_CONFIG

    type: Literal["click"] = "click"
    selector: str = Field(min_length=1)
    timeout: int | None = Field(default=None, gt=0)


class TypeStep(BaseModel):
    """Fill literal text into the element matching a selector."""

    model_config = _STEP_CONFIG

    type: Literal["type"] = "type"
    selector: str = Field(min_length=1)
    text: str = Field(min_length=1)
    timeout: int | None = Field(default=None, gt=0)


class WaitStep(BaseModel):
    """Wait for a selector to appear, or sleep when no selector is given.

    Without ``waitFor`` the step sleeps for ``timeout`` milliseconds
    (1000 ms when unset).
    """

    model_config = _STEP_CONFIG

    type: Literal["wait"] = "wait"
    wait_for: str | None = Field(default=None, alias="waitFor", min_length=1)
    timeout: int | None = Field(default=None, gt=0)

    @property
    def sleep_ms(self) -> int:
        return self.timeout or DEFAULT_WAIT_MS


class ScrollStep(BaseModel):
    """Scroll to the end of the document."""

    model_config = _STEP_CONFIG

    type: Literal["scroll"] = "scroll"
    timeout: int | None = Field(default=None, gt=0)


class HoverStep(BaseModel):
    """Hover over the element matching a selector."""

    model_config = _STEP_CONFIG

    type: Literal["hover"] = "hover"
    selector: str = Field(min_length=1)
    timeout: int | None = Field(default=None, gt=0)


ScenarioStep = Annotated[
    NavigateStep | ClickStep | TypeStep | WaitStep | ScrollStep | HoverStep,
    Field(discriminator="type"),
]

STEP_TYPES: tuple[str, ...] = ("navigate", "click", "type", "wait", "scroll", "hover")

_STEP_ADAPTER: TypeAdapter[ScenarioStep] = TypeAdapter(ScenarioStep)


def parse_step(raw: dict) -> ScenarioStep:
    """Build a single step from its raw mapping.

    Raises:
        pydantic.ValidationError: If the tag is unknown or required
            fields for the tagged variant are missing.
    """
    return _STEP_ADAPTER.validate_python(raw)


def step_timeout_ms(step: ScenarioStep) -> int:
    """Effective timeout for a step, falling back to the 30 s default."""
    return step.timeout or DEFAULT_STEP_TIMEOUT_MS


class Scenario(BaseModel):
    """A complete scenario definition loaded from a scenario file.

    Represents a named sequence of browser interactions against a start
    URL, with optional budget overrides that take precedence over the
    global run configuration.
    """

    model_config = {"extra": "forbid", "populate_by_name": True}

    name: str = Field(min_length=1)
    description: str = ""
    url: str = Field(min_length=1)
    timeout: int | None = Field(default=None, gt=0)
    steps: list[ScenarioStep] = Field(default_factory=list)
    budgets: BudgetThresholds = Field(default_factory=BudgetThresholds)
    variables: dict[str, str | int | float | bool] = Field(default_factory=dict)
