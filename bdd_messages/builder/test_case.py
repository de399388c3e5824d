"""Executable scenario instance aggregating all attempts of one test."""

import logging
from dataclasses import dataclass, field

from bdd_messages.builder.test_case_run import TestCaseRun
from bdd_messages.errors import IdentityResolutionError
from bdd_messages.features import FeatureDocumentStore, Pickle
from bdd_messages.ids import stable_id
from bdd_messages.models.messages import Envelope, TestStep
from bdd_messages.models.messages import TestCase as TestCaseMessage
from bdd_messages.models.runner import StepRecord

log = logging.getLogger(__name__)


@dataclass(kw_only=True, eq=False)
class TestCase:
    """Scenario instance identified by the runner's test id.

    Retries of the same test attach to the same instance, in arrival order.
    """

    __test__ = False

    test_id: str
    store: FeatureDocumentStore
    runs: list[TestCaseRun] = field(default_factory=list)

    @property
    def id(self) -> str:
        """Protocol id of the test case."""
        return stable_id("test-case", self.test_id)

    def add_run(self, run: TestCaseRun) -> None:
        """Attach an attempt to this test case."""
        self.runs.append(run)
        run.test_case = self

    def has_run_after(self, run: TestCaseRun) -> bool:
        """Check if another attempt followed the given one."""
        return self.runs.index(run) < len(self.runs) - 1

    def get_step_id(self, step: StepRecord) -> str:
        """Protocol id of a test step, shared by all attempts."""
        return stable_id("test-step", self.test_id, step.id)

    def build_message(self) -> Envelope:
        """Build the test case message linking steps to the pickle."""
        pickle = self._find_pickle()
        test_steps: dict[str, TestStep] = {}
        for run in self.runs:
            for step in run.result.steps:
                if step.id not in test_steps:
                    test_steps[step.id] = self._build_test_step(run, step, pickle)

        return Envelope(
            test_case=TestCaseMessage(
                id=self.id,
                pickle_id=pickle["id"] if pickle is not None else None,
                test_steps=list(test_steps.values()),
            )
        )

    def _find_pickle(self) -> Pickle | None:
        if not self.runs:
            return None
        test = self.runs[0].test
        try:
            return self.store.find_pickle(test.uri, test.pickle_line)
        except IdentityResolutionError as e:
            log.warning("Cannot link test '%s' to a scenario: %s", test.title, e)
            return None

    def _build_test_step(
        self, run: TestCaseRun, step: StepRecord, pickle: Pickle | None
    ) -> TestStep:
        if step.hook is not None:
            return TestStep(
                id=self.get_step_id(step),
                hook_id=run.hooks.get_or_create(step.hook).id,
            )

        return TestStep(
            id=self.get_step_id(step),
            pickle_step_id=self._find_pickle_step_id(step, pickle),
            step_definition_ids=list(step.step_definition_ids),
        )

    def _find_pickle_step_id(
        self, step: StepRecord, pickle: Pickle | None
    ) -> str | None:
        if pickle is None or step.pickle_step_index is None:
            return None
        try:
            return pickle["steps"][step.pickle_step_index]["id"]
        except IndexError:
            log.warning(
                "Step %s of test %s points past the end of its scenario",
                step.id,
                self.test_id,
            )
            return None
