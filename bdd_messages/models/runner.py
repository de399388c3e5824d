"""Models for results reported by the host test runner."""

from collections.abc import Sequence
from datetime import datetime
from typing import Literal

from pydantic import Field

from bdd_messages.models.base import Model

type AttemptOutcome = Literal["passed", "failed", "timedOut", "skipped", "interrupted"]

type StepOutcome = Literal[
    "passed",
    "failed",
    "timedOut",
    "skipped",
    "pending",
    "undefined",
    "ambiguous",
    "interrupted",
]

type RunOutcome = Literal["passed", "failed", "timedout", "interrupted"]

type HookKind = Literal["before_all", "after_all", "before", "after"]


class HookRef(Model):
    """Hook a step was produced by."""

    key: str = Field(..., description="Internal hook identifier, stable across tests")
    kind: HookKind = Field(default="before", description="When the hook runs")
    name: str | None = Field(default=None, description="Hook title")
    uri: str | None = Field(default=None, description="File defining the hook")
    line: int | None = Field(default=None, description="Line defining the hook")
    tag_expression: str | None = Field(default=None, description="Tag filter")


class StepRecord(Model):
    """Single step executed within an attempt."""

    id: str = Field(..., description="Runner step identity, stable across retries")
    title: str | None = Field(default=None, description="Step title as reported")
    outcome: StepOutcome = Field(..., description="Step outcome")
    start_time: datetime | None = Field(default=None, description="Step start")
    duration: float = Field(default=0.0, ge=0, description="Duration in ms")
    error: str | None = Field(default=None, description="Failure message")
    pickle_step_index: int | None = Field(
        default=None, ge=0, description="Index of the pickle step this step runs"
    )
    step_definition_ids: Sequence[str] = Field(
        default_factory=list, description="Candidate step definition ids"
    )
    hook: HookRef | None = Field(default=None, description="Hook producing the step")


class TestInfo(Model):
    """Runner-assigned test, grouping all attempts of one scenario instance."""

    __test__ = False

    id: str = Field(..., description="Runner test identity")
    title: str = Field(..., description="Test title")
    uri: str = Field(..., description="Feature file, relative to the working dir")
    pickle_line: int = Field(
        ..., ge=1, description="Line of the scenario or example row"
    )


class AttemptResult(Model):
    """Outcome of one attempt of a test."""

    status: AttemptOutcome = Field(..., description="Attempt outcome")
    start_time: datetime = Field(..., description="Attempt start")
    duration: float = Field(..., ge=0, description="Duration in ms")
    retry: int = Field(default=0, ge=0, description="Attempt index, 0 for first")
    error: str | None = Field(default=None, description="Failure message")
    steps: Sequence[StepRecord] = Field(default_factory=list, description="Steps")


class RunSummary(Model):
    """Overall run result delivered once when the runner finishes."""

    status: RunOutcome = Field(..., description="Overall run outcome")
    start_time: datetime | None = Field(default=None, description="Run start")
    duration: float | None = Field(default=None, ge=0, description="Duration in ms")


class Execution(Model):
    """One recorded attempt as stored in a run results file."""

    test: TestInfo
    result: AttemptResult


class StepDefinitionRecord(Model):
    """Step definition as stored in a run results file."""

    id: str
    keyword: Literal["Given", "When", "Then", "Step"] = "Step"
    pattern: str
    uri: str | None = None
    line: int | None = None


class RunResults(Model):
    """Complete run results file."""

    summary: RunSummary
    executions: Sequence[Execution] = Field(default_factory=list)
    step_definitions: Sequence[StepDefinitionRecord] = Field(default_factory=list)
