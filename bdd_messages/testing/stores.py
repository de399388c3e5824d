"""In-memory feature document store for tests."""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from bdd_messages.errors import IdentityResolutionError
from bdd_messages.features import GherkinDocument, Pickle
from bdd_messages.ids import stable_id
from bdd_messages.models.messages import Source


def make_pickle(
    uri: str, line: int, name: str, steps: Sequence[str] = ()
) -> dict[str, object]:
    """Build a pickle as produced by the gherkin compiler."""
    pickle_id = stable_id("pickle", uri, str(line))
    return {
        "id": pickle_id,
        "uri": uri,
        "name": name,
        "language": "en",
        "astNodeIds": [stable_id("scenario", uri, str(line))],
        "tags": [],
        "steps": [
            {
                "id": stable_id(pickle_id, str(index)),
                "text": text,
                "type": "Action",
                "astNodeIds": [],
            }
            for index, text in enumerate(steps)
        ],
    }


@dataclass(kw_only=True)
class InMemoryFeatureStore:
    """Feature store serving pickles registered by location.

    Records every ``load`` call. ``load_error`` is raised by the next load
    only, so retries succeed.
    """

    pickles: dict[tuple[str, int], Pickle] = field(default_factory=dict)
    documents: list[GherkinDocument] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    load_error: Exception | None = None
    load_calls: list[tuple[tuple[str, ...], Path]] = field(default_factory=list)

    def add_pickle(self, pickle: Pickle, line: int) -> Pickle:
        """Serve pickle at its uri and the given line."""
        self.pickles[(pickle["uri"], line)] = pickle
        return pickle

    async def load(self, uris: Sequence[str], relative_to: Path) -> None:
        """Record the call, yielding once like a real file read."""
        self.load_calls.append((tuple(uris), relative_to))
        await asyncio.sleep(0)
        if self.load_error is not None:
            error, self.load_error = self.load_error, None
            raise error

    def get_sources(self) -> Sequence[Source]:
        """Return registered sources."""
        return list(self.sources)

    def get_gherkin_documents(self) -> Sequence[GherkinDocument]:
        """Return registered documents."""
        return list(self.documents)

    def get_pickles(self) -> Sequence[Pickle]:
        """Return registered pickles."""
        return list(self.pickles.values())

    def find_pickle(self, uri: str, line: int) -> Pickle:
        """Return the pickle registered at the location."""
        try:
            return self.pickles[(uri, line)]
        except KeyError:
            raise IdentityResolutionError(
                f"No scenario found at {uri}:{line}"
            ) from None
