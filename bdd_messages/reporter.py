"""Glue between runner notifications, the shared builder and one formatter."""

import logging
from dataclasses import dataclass

from bdd_messages.builder import BuilderRef
from bdd_messages.channel import MessageSink
from bdd_messages.models.runner import AttemptResult, RunSummary, TestInfo

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class MessagesReporter:
    """Reporter delivering the run's messages to a single sink.

    Several reporters may share a builder; each receives the full message
    sequence once the run has finished.
    """

    ref: BuilderRef
    sink: MessageSink

    def on_test_finished(self, test: TestInfo, result: AttemptResult) -> None:
        """Forward a finished attempt to the shared builder."""
        self.ref.on_test_finished(test, result)

    def on_run_finished(self, summary: RunSummary) -> None:
        """Forward the run summary to the shared builder."""
        self.ref.on_run_finished(summary)

    async def finished(self) -> None:
        """Wait for the build and deliver the messages to the sink."""
        messages = await self.ref.builder.build()
        log.info("Emitting %d message(s) for run '%s'", len(messages), self.ref.run_id)
        await self.ref.builder.emit_messages(self.sink)
