"""Newline-delimited JSON output of protocol messages."""

import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from pydantic import BaseModel

from bdd_messages.formatters.manifest import FormatterManifest
from bdd_messages.models.messages import Envelope


class NdjsonConfig(BaseModel):
    """Configuration for the NDJSON formatter."""

    # None writes to stdout
    output: Path | None = None


@dataclass(kw_only=True)
class NdjsonFormatter:
    """Writes one JSON document per message."""

    stream: TextIO = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: NdjsonConfig
    ) -> AsyncGenerator["NdjsonFormatter", None]:
        """Create formatter with managed output file lifecycle."""
        if config.output is None:
            yield cls(stream=sys.stdout)
            return

        config.output.parent.mkdir(parents=True, exist_ok=True)
        with config.output.open("w", encoding="utf-8") as stream:
            yield cls(stream=stream)

    async def emit(self, envelope: Envelope) -> None:
        """Write the envelope as a single line."""
        self.stream.write(envelope.to_json() + "\n")


ndjson_manifest = FormatterManifest(
    config_cls=NdjsonConfig,
    formatter_factory=NdjsonFormatter.from_config,
)
