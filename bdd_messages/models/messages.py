"""Protocol message models emitted by the messages builder."""

from collections.abc import Sequence
from typing import Any, Literal

from pydantic import model_validator
from pydantic.alias_generators import to_camel

from bdd_messages.models.base import ProtocolModel

PROTOCOL_VERSION = "24.0.0"

GHERKIN_MEDIA_TYPE = "text/x.cucumber.gherkin+plain"

type StepStatus = Literal[
    "PASSED",
    "FAILED",
    "SKIPPED",
    "PENDING",
    "UNDEFINED",
    "AMBIGUOUS",
]

type HookType = Literal[
    "BEFORE_TEST_RUN",
    "AFTER_TEST_RUN",
    "BEFORE_TEST_CASE",
    "AFTER_TEST_CASE",
]


class Timestamp(ProtocolModel):
    """Point in time as seconds since the epoch plus nanoseconds."""

    seconds: int
    nanos: int


class Duration(ProtocolModel):
    """Elapsed time as seconds plus nanoseconds."""

    seconds: int
    nanos: int


class Location(ProtocolModel):
    """Line (and optional column) inside a source file."""

    line: int
    column: int | None = None


class SourceReference(ProtocolModel):
    """Reference to a location in user code or a feature file."""

    uri: str | None = None
    location: Location | None = None


class Product(ProtocolModel):
    """Name and version of a piece of software or hardware."""

    name: str
    version: str | None = None


class Meta(ProtocolModel):
    """Information about the environment that produced the messages."""

    protocol_version: str
    implementation: Product
    runtime: Product
    os: Product
    cpu: Product


class Source(ProtocolModel):
    """Raw text of a feature file."""

    uri: str
    data: str
    media_type: str = GHERKIN_MEDIA_TYPE


class StepDefinitionPattern(ProtocolModel):
    """Expression a step definition matches against step text."""

    source: str
    type: Literal["CUCUMBER_EXPRESSION", "REGULAR_EXPRESSION"]


class StepDefinition(ProtocolModel):
    """A registered step definition."""

    id: str
    pattern: StepDefinitionPattern
    source_reference: SourceReference


class Hook(ProtocolModel):
    """A hook definition referenced by at least one test step."""

    id: str
    name: str | None = None
    type: HookType | None = None
    source_reference: SourceReference
    tag_expression: str | None = None


class TestRunStarted(ProtocolModel):
    """Start of the whole run."""

    __test__ = False

    timestamp: Timestamp


class TestStep(ProtocolModel):
    """A step of a test case, either a pickle step or a hook."""

    __test__ = False

    id: str
    pickle_step_id: str | None = None
    step_definition_ids: Sequence[str] | None = None
    hook_id: str | None = None


class TestCase(ProtocolModel):
    """Executable scenario instance linked to its pickle."""

    __test__ = False

    id: str
    pickle_id: str | None = None
    test_steps: Sequence[TestStep]


class TestCaseStarted(ProtocolModel):
    """Start of one attempt of a test case."""

    __test__ = False

    id: str
    test_case_id: str
    attempt: int
    timestamp: Timestamp


class TestStepStarted(ProtocolModel):
    """Start of a step within an attempt."""

    __test__ = False

    test_case_started_id: str
    test_step_id: str
    timestamp: Timestamp


class TestStepResult(ProtocolModel):
    """Outcome of a single step."""

    __test__ = False

    status: StepStatus
    duration: Duration
    message: str | None = None


class TestStepFinished(ProtocolModel):
    """End of a step within an attempt.

    For failed steps, ``source_reference`` points at the step definition that
    raised, when it can be resolved.
    """

    __test__ = False

    test_case_started_id: str
    test_step_id: str
    test_step_result: TestStepResult
    timestamp: Timestamp
    source_reference: SourceReference | None = None


class TestCaseFinished(ProtocolModel):
    """End of one attempt of a test case, with the aggregated status."""

    __test__ = False

    test_case_started_id: str
    timestamp: Timestamp
    status: StepStatus
    will_be_retried: bool = False


class TestRunFinished(ProtocolModel):
    """End of the whole run."""

    __test__ = False

    success: bool
    timestamp: Timestamp


class Envelope(ProtocolModel):
    """Tagged message wrapper; exactly one field is set."""

    meta: Meta | None = None
    source: Source | None = None
    document: dict[str, Any] | None = None
    scenario_instance: dict[str, Any] | None = None
    step_definition: StepDefinition | None = None
    hook: Hook | None = None
    run_started: TestRunStarted | None = None
    test_case: TestCase | None = None
    attempt_started: TestCaseStarted | None = None
    step_started: TestStepStarted | None = None
    step_finished: TestStepFinished | None = None
    attempt_finished: TestCaseFinished | None = None
    run_finished: TestRunFinished | None = None

    @model_validator(mode="after")
    def _check_single_tag(self) -> "Envelope":
        tags = [
            name for name in type(self).model_fields if getattr(self, name) is not None
        ]
        if len(tags) != 1:
            raise ValueError(f"Envelope must carry exactly one message, got {tags}")
        return self

    @property
    def tag(self) -> str:
        """Protocol name of the message carried by this envelope."""
        for name in type(self).model_fields:
            if getattr(self, name) is not None:
                return to_camel(name)
        raise AssertionError("unreachable")  # pragma: no cover

    @property
    def message(self) -> Any:
        """The message carried by this envelope."""
        for name in type(self).model_fields:
            if (value := getattr(self, name)) is not None:
                return value
        raise AssertionError("unreachable")  # pragma: no cover
