"""Loading and indexing of feature documents and their pickles."""

import asyncio
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from gherkin.ast_builder import AstBuilder
from gherkin.parser import Parser
from gherkin.pickles.compiler import Compiler
from gherkin.stream.id_generator import IdGenerator
from gherkin.token_scanner import TokenScanner

from bdd_messages.errors import IdentityResolutionError
from bdd_messages.models.messages import Source

log = logging.getLogger(__name__)

type GherkinDocument = Mapping[str, Any]
type Pickle = Mapping[str, Any]


class FeatureDocumentStore(Protocol):
    """Query interface over parsed feature documents."""

    async def load(self, uris: Sequence[str], relative_to: Path) -> None:
        """Load and parse the given feature files."""

    def get_sources(self) -> Sequence[Source]:
        """Return the raw text of every loaded feature file."""

    def get_gherkin_documents(self) -> Sequence[GherkinDocument]:
        """Return every parsed document."""

    def get_pickles(self) -> Sequence[Pickle]:
        """Return every generated pickle."""

    def find_pickle(self, uri: str, line: int) -> Pickle:
        """Return the pickle generated at the given file location."""


@dataclass(frozen=True, kw_only=True)
class LoadedFeature:
    """A parsed feature file with the pickles compiled from it."""

    source: Source
    document: GherkinDocument
    pickles: Sequence[Pickle]
    pickles_by_line: Mapping[int, Pickle]


@dataclass(kw_only=True)
class FeaturesLoader:
    """Feature document store backed by the official gherkin parser.

    Every call to ``load`` replaces the previous content, so a failed load can
    simply be retried.
    """

    _features: dict[str, LoadedFeature] = field(default_factory=dict, init=False)

    async def load(self, uris: Sequence[str], relative_to: Path) -> None:
        """Read, parse and compile the given feature files.

        Args:
            uris: Feature file locations as reported by the runner
            relative_to: Directory the locations are relative to

        Raises:
            FileNotFoundError: If a feature file does not exist
            gherkin.errors.CompositeParserException: If a file cannot be parsed

        """
        texts = await asyncio.gather(
            *(
                asyncio.to_thread((relative_to / uri).read_text, "utf-8")
                for uri in uris
            )
        )

        id_generator = IdGenerator()
        parser = Parser(AstBuilder(id_generator))
        compiler = Compiler(id_generator)

        features: dict[str, LoadedFeature] = {}
        for uri, text in zip(uris, texts, strict=True):
            document = dict(parser.parse(TokenScanner(text)))
            document["uri"] = uri
            pickles = compiler.compile(document)
            features[uri] = LoadedFeature(
                source=Source(uri=uri, data=text),
                document=document,
                pickles=pickles,
                pickles_by_line=index_pickles_by_line(document, pickles),
            )

        log.info("Loaded %d feature file(s)", len(features))
        self._features = features

    def get_sources(self) -> Sequence[Source]:
        """Return the raw text of every loaded feature file."""
        return [feature.source for feature in self._features.values()]

    def get_gherkin_documents(self) -> Sequence[GherkinDocument]:
        """Return every parsed document."""
        return [feature.document for feature in self._features.values()]

    def get_pickles(self) -> Sequence[Pickle]:
        """Return every generated pickle, grouped by file."""
        return [
            pickle for feature in self._features.values() for pickle in feature.pickles
        ]

    def find_pickle(self, uri: str, line: int) -> Pickle:
        """Return the pickle generated at the given file location.

        Raises:
            IdentityResolutionError: If no pickle was generated there

        """
        feature = self._features.get(uri)
        if feature is None:
            raise IdentityResolutionError(f"Feature file '{uri}' is not loaded")
        try:
            return feature.pickles_by_line[line]
        except KeyError:
            raise IdentityResolutionError(
                f"No scenario found at {uri}:{line}"
            ) from None


def index_pickles_by_line(
    document: GherkinDocument, pickles: Iterable[Pickle]
) -> Mapping[int, Pickle]:
    """Map each pickle to the line of the scenario or example row it came from."""
    lines = dict(iter_node_lines(document.get("feature") or {}))
    return {lines[pickle["astNodeIds"][-1]]: pickle for pickle in pickles}


def iter_node_lines(node: Mapping[str, Any]) -> Iterator[tuple[str, int]]:
    """Yield (ast node id, line) for scenarios and example rows."""
    for child in node.get("children", []):
        if "rule" in child:
            yield from iter_node_lines(child["rule"])
        elif "scenario" in child:
            scenario = child["scenario"]
            yield scenario["id"], scenario["location"]["line"]
            for examples in scenario.get("examples", []):
                for row in examples.get("tableBody", []):
                    yield row["id"], row["location"]["line"]
