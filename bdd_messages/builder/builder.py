"""Builds protocol messages for a whole run, once, for all consumers."""

import asyncio
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from pathlib import Path

from bdd_messages.builder.hooks import HookRegistry
from bdd_messages.builder.meta import build_meta_message
from bdd_messages.builder.test_case import TestCase
from bdd_messages.builder.test_case_run import TestCaseRun
from bdd_messages.channel import EnvelopeChannel, MessageSink
from bdd_messages.features import FeatureDocumentStore, FeaturesLoader
from bdd_messages.ids import get_or_create
from bdd_messages.models.messages import Envelope, TestRunFinished, TestRunStarted
from bdd_messages.models.runner import AttemptResult, RunSummary, TestInfo
from bdd_messages.steps import StepRegistry
from bdd_messages.timing import TimeMeasured, datetime_to_timestamp, derive_run_timing

log = logging.getLogger(__name__)


class BuildState(StrEnum):
    """Lifecycle of a build."""

    PENDING = "pending"
    BUILDING = "building"
    DONE = "done"


@dataclass(frozen=True, kw_only=True)
class ExecutionRecord:
    """A finished attempt as reported by the runner."""

    test: TestInfo
    result: AttemptResult


@dataclass(kw_only=True)
class MessagesBuilder:
    """Collects runner notifications and builds the message sequence.

    The build waits until the run has finished, runs at most once however
    many consumers ask for it, and the finished sequence is replayed to every
    sink passed to ``emit_messages``.
    """

    cwd: Path = field(default_factory=Path.cwd)
    store: FeatureDocumentStore = field(default_factory=FeaturesLoader)
    step_definitions: StepRegistry = field(default_factory=StepRegistry)

    _records: list[ExecutionRecord] = field(default_factory=list, init=False)
    _summary: RunSummary | None = field(default=None, init=False)
    _run_finished: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _state: BuildState = field(default=BuildState.PENDING, init=False)
    _build_task: "asyncio.Task[Sequence[Envelope]] | None" = field(
        default=None, init=False
    )
    _channel: EnvelopeChannel = field(default_factory=EnvelopeChannel, init=False)

    @property
    def state(self) -> BuildState:
        """Current build state."""
        return self._state

    def on_test_finished(self, test: TestInfo, result: AttemptResult) -> None:
        """Record a finished attempt."""
        if self._state is not BuildState.PENDING:
            log.warning("Ignoring result for '%s' received after build", test.title)
            return
        self._records.append(ExecutionRecord(test=test, result=result))

    def on_run_finished(self, summary: RunSummary) -> None:
        """Record the run summary and allow the build to start."""
        if self._summary is not None:
            log.warning("Ignoring duplicate run finished notification")
            return
        self._summary = summary
        self._run_finished.set()

    async def build(self) -> Sequence[Envelope]:
        """Build the messages, sharing one build between concurrent callers.

        Returns:
            The complete message sequence

        Raises:
            EmptyRunError: If the run has no results and no explicit timing
            FileNotFoundError: If a feature file cannot be read

        """
        if self._build_task is None:
            self._build_task = asyncio.ensure_future(self._do_build())

        task = self._build_task
        try:
            return await task
        except Exception:
            if self._build_task is task and self._state is not BuildState.DONE:
                self._build_task = None
                self._state = BuildState.PENDING
            raise

    async def emit_messages(self, sink: MessageSink) -> None:
        """Deliver the message sequence to sink.

        Messages already built are replayed immediately; a sink attached
        before the build completes receives them as they are published.
        """
        await self._channel.subscribe(sink)

    async def _do_build(self) -> Sequence[Envelope]:
        await self._run_finished.wait()
        self._state = BuildState.BUILDING
        log.info("Building messages for %d test result(s)", len(self._records))

        hooks = HookRegistry()
        runs = self._create_test_case_runs(hooks)
        await self._load_features(runs)
        test_cases = self._create_test_cases(runs)
        timing = self._get_run_timing(runs)

        messages: list[Envelope] = [build_meta_message()]
        messages.extend(Envelope(source=source) for source in self.store.get_sources())
        messages.extend(
            Envelope(document=dict(document))
            for document in self.store.get_gherkin_documents()
        )
        messages.extend(
            Envelope(scenario_instance=dict(pickle))
            for pickle in self.store.get_pickles()
        )
        messages.extend(self.step_definitions.build_messages())
        messages.extend(hooks.build_messages())
        messages.append(
            Envelope(
                run_started=TestRunStarted(
                    timestamp=datetime_to_timestamp(timing.start_time)
                )
            )
        )
        messages.extend(test_case.build_message() for test_case in test_cases)
        for test_case in test_cases:
            for run in test_case.runs:
                messages.extend(run.build_messages())
        messages.append(self._build_run_finished(timing))

        self._state = BuildState.DONE
        log.info("Built %d message(s)", len(messages))

        await self._channel.publish_all(messages)
        return tuple(messages)

    def _create_test_case_runs(self, hooks: HookRegistry) -> Sequence[TestCaseRun]:
        return [
            TestCaseRun(
                test=record.test,
                result=record.result,
                hooks=hooks,
                step_definitions=self.step_definitions,
            )
            for record in self._records
        ]

    async def _load_features(self, runs: Sequence[TestCaseRun]) -> None:
        uris = list(dict.fromkeys(run.test.uri for run in runs))
        log.info("Loading %d feature file(s) relative to %s", len(uris), self.cwd)
        await self.store.load(uris, self.cwd)

    def _create_test_cases(self, runs: Sequence[TestCaseRun]) -> Sequence[TestCase]:
        test_cases: dict[str, TestCase] = {}
        for run in runs:
            test_case = get_or_create(
                test_cases,
                run.test.id,
                partial(TestCase, test_id=run.test.id, store=self.store),
            )
            test_case.add_run(run)
        return list(test_cases.values())

    def _get_run_timing(self, runs: Sequence[TestCaseRun]) -> TimeMeasured:
        explicit = None
        summary = self._require_summary()
        if summary.start_time is not None and summary.duration is not None:
            explicit = TimeMeasured(
                start_time=summary.start_time, duration=summary.duration
            )
        return derive_run_timing([run.result for run in runs], explicit)

    def _build_run_finished(self, timing: TimeMeasured) -> Envelope:
        return Envelope(
            run_finished=TestRunFinished(
                success=self._require_summary().status == "passed",
                timestamp=datetime_to_timestamp(timing.start_time, timing.duration),
            )
        )

    def _require_summary(self) -> RunSummary:
        if self._summary is None:
            raise RuntimeError("Run summary is not available before run finished")
        return self._summary


@dataclass(frozen=True, kw_only=True)
class BuilderRef:
    """Handle on a shared builder.

    Only the first handle for a run forwards runner notifications, so several
    reporters attached to one run do not record every result twice.
    """

    run_id: str
    builder: MessagesBuilder
    is_first: bool

    def on_test_finished(self, test: TestInfo, result: AttemptResult) -> None:
        """Forward a finished attempt if this is the first handle."""
        if self.is_first:
            self.builder.on_test_finished(test, result)

    def on_run_finished(self, summary: RunSummary) -> None:
        """Forward the run summary if this is the first handle."""
        if self.is_first:
            self.builder.on_run_finished(summary)


@dataclass(kw_only=True)
class BuilderRegistry:
    """Shared builders keyed by run id, with reference counting."""

    builder_factory: Callable[[], MessagesBuilder] = MessagesBuilder

    _builders: dict[str, MessagesBuilder] = field(default_factory=dict, init=False)
    _ref_counts: dict[str, int] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def acquire(self, run_id: str) -> BuilderRef:
        """Return a handle on the builder for run_id, creating it if needed."""
        with self._lock:
            builder = get_or_create(self._builders, run_id, self.builder_factory)
            count = self._ref_counts.get(run_id, 0) + 1
            self._ref_counts[run_id] = count
        return BuilderRef(run_id=run_id, builder=builder, is_first=count == 1)

    def release(self, ref: BuilderRef) -> None:
        """Drop a handle; the builder is forgotten when no handle remains."""
        with self._lock:
            count = self._ref_counts.get(ref.run_id, 0) - 1
            if count > 0:
                self._ref_counts[ref.run_id] = count
                return
            self._ref_counts.pop(ref.run_id, None)
            self._builders.pop(ref.run_id, None)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._builders
