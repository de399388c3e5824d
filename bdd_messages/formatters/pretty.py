"""Human-readable progress and summary output."""

import asyncio
import os
import sys
from collections import Counter
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from pydantic import BaseModel

from bdd_messages.features import iter_node_lines
from bdd_messages.formatters.manifest import FormatterManifest
from bdd_messages.models.messages import (
    Envelope,
    Hook,
    SourceReference,
    StepStatus,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestRunStarted,
    TestStepFinished,
    TestStepStarted,
)
from bdd_messages.models.messages import TestCase as TestCaseMessage
from bdd_messages.timing import from_protocol_timestamp

STATUS_SYMBOLS: Mapping[StepStatus, str] = {
    "PASSED": "✅",
    "FAILED": "❌",
    "PENDING": "⏳",
    "SKIPPED": "⏭️",
    "UNDEFINED": "❓",
    "AMBIGUOUS": "⁉️",
}

STATUS_ORDER: Sequence[StepStatus] = (
    "PASSED",
    "FAILED",
    "SKIPPED",
    "PENDING",
    "UNDEFINED",
    "AMBIGUOUS",
)

LINE_WIDTH = 80

UNKNOWN_STEP_TEXT = "<unknown step>"


class PrettyConfig(BaseModel):
    """Configuration for the pretty formatter."""

    # Base for relative paths in output; defaults to the current directory
    cwd: Path | None = None
    indent: int = 4


@dataclass(kw_only=True)
class OutputWriter:
    """Serialises writes so multi-line blocks are never interleaved."""

    stream: TextIO | None = field(default=None, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    async def write_line(self, line: str) -> None:
        """Write a single line."""
        await self.write_block([line])

    async def write_block(self, lines: Sequence[str]) -> None:
        """Write several lines with no other output in between."""
        async with self._lock:
            stream = self.stream or sys.stdout
            for line in lines:
                stream.write(line + "\n")
            stream.flush()


@dataclass(frozen=True, kw_only=True)
class ScenarioInfo:
    """What the formatter knows about a pickle."""

    name: str
    feature_name: str
    feature_file: str
    line: int
    tags: Sequence[str]


@dataclass(kw_only=True)
class AttemptState:
    """Progress of an attempt being rendered."""

    title: str
    scenario: ScenarioInfo | None
    started_at: float


@dataclass(frozen=True, kw_only=True)
class ScenarioResult:
    """Final outcome of a scenario, for the summary."""

    name: str
    status: StepStatus
    duration: float
    scenario: ScenarioInfo | None


@dataclass(kw_only=True)
class PrettyFormatter:
    """Renders progress and a summary from the message stream.

    Messages are consumed one by one; attempt messages may arrive while the
    formatter is still indexing, which only affects how much detail is shown.
    """

    writer: OutputWriter = field(default_factory=OutputWriter)
    cwd: Path = field(default_factory=Path.cwd)
    indent: str = "    "

    _feature_names: dict[str, str] = field(default_factory=dict, init=False)
    _node_lines: dict[str, dict[str, int]] = field(default_factory=dict, init=False)
    _scenarios: dict[str, ScenarioInfo] = field(default_factory=dict, init=False)
    _pickle_step_texts: dict[str, str] = field(default_factory=dict, init=False)
    _hook_names: dict[str, str] = field(default_factory=dict, init=False)
    _test_case_pickles: dict[str, str] = field(default_factory=dict, init=False)
    _step_texts: dict[str, str] = field(default_factory=dict, init=False)
    _attempts: dict[str, AttemptState] = field(default_factory=dict, init=False)
    _results: list[ScenarioResult] = field(default_factory=list, init=False)
    _setup_logs: list[str] = field(default_factory=list, init=False)
    _scenario_count: int = field(default=0, init=False)
    _step_count: int = field(default=0, init=False)
    _run_started_at: float | None = field(default=None, init=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: PrettyConfig
    ) -> AsyncGenerator["PrettyFormatter", None]:
        """Create formatter writing to stdout."""
        yield cls(cwd=config.cwd or Path.cwd(), indent=" " * config.indent)

    @property
    def results(self) -> Sequence[ScenarioResult]:
        """Final scenario outcomes rendered so far."""
        return tuple(self._results)

    async def emit(self, envelope: Envelope) -> None:
        """Index or render one message."""
        handlers: Mapping[str, Callable[[Any], Awaitable[None] | None]] = {
            "document": self._on_document,
            "scenarioInstance": self._on_pickle,
            "hook": self._on_hook,
            "runStarted": self._on_run_started,
            "testCase": self._on_test_case,
            "attemptStarted": self._on_attempt_started,
            "stepStarted": self._on_step_started,
            "stepFinished": self._on_step_finished,
            "attemptFinished": self._on_attempt_finished,
            "runFinished": self._on_run_finished,
        }
        handler = handlers.get(envelope.tag)
        if handler is None:
            return
        if (pending := handler(envelope.message)) is not None:
            await pending

    async def log(self, message: str, *, setup: bool = False) -> None:
        """Write a log line from user code.

        Setup lines are buffered and written as one block before the next
        scenario, so they stay together.
        """
        if setup:
            self._setup_logs.append(message)
            return
        await self.writer.write_line(message)

    def _on_document(self, document: Mapping[str, Any]) -> None:
        feature = document.get("feature")
        if not feature:
            return
        uri = document["uri"]
        self._feature_names[uri] = feature["name"]
        self._node_lines[uri] = dict(iter_node_lines(feature))

    def _on_pickle(self, pickle: Mapping[str, Any]) -> None:
        uri = pickle["uri"]
        ast_node_ids = pickle.get("astNodeIds") or []
        line = 0
        if ast_node_ids:
            line = self._node_lines.get(uri, {}).get(ast_node_ids[-1], 0)
        self._scenarios[pickle["id"]] = ScenarioInfo(
            name=pickle["name"],
            feature_name=self._feature_names.get(uri, Path(uri).stem),
            feature_file=self._relative(uri),
            line=line,
            tags=[tag["name"] for tag in pickle.get("tags", [])],
        )
        for step in pickle.get("steps", []):
            self._pickle_step_texts[step["id"]] = step["text"]

    def _on_hook(self, hook: Hook) -> None:
        self._hook_names[hook.id] = hook.name or "Hook"

    def _on_run_started(self, message: TestRunStarted) -> None:
        self._run_started_at = from_protocol_timestamp(message.timestamp)

    def _on_test_case(self, test_case: TestCaseMessage) -> None:
        if test_case.pickle_id is not None:
            self._test_case_pickles[test_case.id] = test_case.pickle_id
        for step in test_case.test_steps:
            if step.pickle_step_id in self._pickle_step_texts:
                self._step_texts[step.id] = self._pickle_step_texts[
                    step.pickle_step_id
                ]
            elif step.hook_id is not None:
                self._step_texts[step.id] = self._hook_names.get(step.hook_id, "Hook")

    async def _on_attempt_started(self, message: TestCaseStarted) -> None:
        self._scenario_count += 1
        pickle_id = self._test_case_pickles.get(message.test_case_id)
        scenario = self._scenarios.get(pickle_id) if pickle_id else None
        title = scenario.name if scenario else message.test_case_id
        self._attempts[message.id] = AttemptState(
            title=title,
            scenario=scenario,
            started_at=from_protocol_timestamp(message.timestamp),
        )

        await self._flush_setup_logs()
        header = f"📋 Scenario ({self._scenario_count}): {title}"
        if message.attempt > 0:
            header += f" (retry #{message.attempt})"
        lines = ["", header]
        if scenario is not None:
            lines.append(
                f"{self.indent}Feature: {scenario.feature_name} "
                f"({scenario.feature_file}:{scenario.line})"
            )
            if scenario.tags:
                lines.append(f"{self.indent}Tags: {', '.join(scenario.tags)}")
        await self.writer.write_block(lines)

    def _on_step_started(self, message: TestStepStarted) -> None:
        if message.test_step_id in self._step_texts:
            self._step_count += 1

    async def _on_step_finished(self, message: TestStepFinished) -> None:
        result = message.test_step_result
        has_details = result.status == "FAILED" or result.message is not None
        text = self._step_texts.get(message.test_step_id)
        if text is None:
            # Steps unknown to the scenario are only shown when they explain a failure
            if not has_details:
                return
            text = UNKNOWN_STEP_TEXT

        attempt = self._attempts.get(message.test_case_started_id)

        millis = result.duration.seconds * 1000 + result.duration.nanos / 1_000_000
        symbol = STATUS_SYMBOLS[result.status]
        lines = [f"{self.indent}{symbol} {text} ({millis:.2f}ms)"]
        if has_details:
            detail = self.indent * 2
            if attempt is not None and attempt.scenario is not None:
                scenario = attempt.scenario
                lines.append(f"{detail}at {scenario.feature_file}:{scenario.line}")
            location = self._format_location(message.source_reference)
            if location is not None:
                lines.append(f"{detail}at {location}")
            if result.message:
                lines.append(f"{detail}Error: {result.message}")
        await self.writer.write_block(lines)

    async def _on_attempt_finished(self, message: TestCaseFinished) -> None:
        attempt = self._attempts.pop(message.test_case_started_id, None)
        if attempt is None:
            return

        finished_at = from_protocol_timestamp(message.timestamp)
        elapsed = (finished_at - attempt.started_at) / 1000
        symbol = STATUS_SYMBOLS[message.status]
        line = f"{symbol} {message.status} {attempt.title} ({elapsed:.2f}s)"
        if message.will_be_retried:
            line += " - will be retried"
        else:
            self._results.append(
                ScenarioResult(
                    name=attempt.title,
                    status=message.status,
                    duration=elapsed,
                    scenario=attempt.scenario,
                )
            )
        await self.writer.write_line(line)

    async def _on_run_finished(self, message: TestRunFinished) -> None:
        await self._flush_setup_logs()

        duration = 0.0
        if self._run_started_at is not None:
            finished_at = from_protocol_timestamp(message.timestamp)
            duration = (finished_at - self._run_started_at) / 1000

        counts = Counter(result.status for result in self._results)
        lines = [
            "",
            "═" * LINE_WIDTH,
            "[ TEST SUMMARY ]",
            "═" * LINE_WIDTH,
            f"Total Scenarios: {len(self._results)}",
            f"Total Steps: {self._step_count}",
            f"Total Duration: {duration:.2f}s",
            "",
            "Status Breakdown:",
        ]
        lines.extend(
            f"{self.indent}{STATUS_SYMBOLS[status]} {status}: {counts[status]}"
            for status in STATUS_ORDER
            if counts[status]
        )

        failed = [result for result in self._results if result.status == "FAILED"]
        if failed:
            lines.extend(["", "[ FAILED TESTS ]"])
            for result in failed:
                lines.append(f"{self.indent}• {result.name}")
                if result.scenario is not None:
                    scenario = result.scenario
                    lines.append(
                        f"{self.indent}  Feature: {scenario.feature_name} "
                        f"({scenario.feature_file}:{scenario.line})"
                    )
                    if scenario.tags:
                        lines.append(
                            f"{self.indent}  Tags: {', '.join(scenario.tags)}"
                        )

        lines.extend(["", "═" * LINE_WIDTH])
        await self.writer.write_block(lines)

    async def _flush_setup_logs(self) -> None:
        if not self._setup_logs:
            return
        logs, self._setup_logs = self._setup_logs, []
        await self.writer.write_block(
            ["", "[ SETUP ]" + "═" * (LINE_WIDTH - 9), *logs, "═" * LINE_WIDTH]
        )

    def _format_location(self, reference: SourceReference | None) -> str | None:
        if reference is None or reference.uri is None:
            return None
        location = self._relative(reference.uri)
        if reference.location is not None:
            location += f":{reference.location.line}"
        return location

    def _relative(self, uri: str) -> str:
        if not os.path.isabs(uri):
            return uri
        return os.path.relpath(uri, self.cwd)


pretty_manifest = FormatterManifest(
    config_cls=PrettyConfig,
    formatter_factory=PrettyFormatter.from_config,
)
