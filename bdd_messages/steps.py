"""Step definition registry.

Step metadata is kept in side tables owned by the registry rather than on the
functions themselves: the ``given`` / ``when`` / ``then`` decorators record a
pending entry keyed by the function object, and ``link_fixture`` turns the
decorated methods of a class into definitions bound to that class.
"""

import inspect
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from bdd_messages.errors import (
    AmbiguousHookFixtureError,
    IdentityResolutionError,
    MissingHookFixtureError,
)
from bdd_messages.ids import stable_id
from bdd_messages.models.messages import (
    Envelope,
    Location,
    SourceReference,
    StepDefinitionPattern,
)
from bdd_messages.models.messages import StepDefinition as StepDefinitionMessage

log = logging.getLogger(__name__)

type StepKeyword = Literal["Given", "When", "Then", "Step"]

type PatternType = Literal["CUCUMBER_EXPRESSION", "REGULAR_EXPRESSION"]


@dataclass(frozen=True, kw_only=True)
class StepDefinition:
    """A registered step definition."""

    id: str
    keyword: StepKeyword
    pattern: str
    pattern_type: PatternType = "CUCUMBER_EXPRESSION"
    uri: str | None = None
    line: int | None = None
    fn: Callable[..., Any] | None = field(default=None, repr=False)
    owner: type | None = None

    @property
    def source_reference(self) -> SourceReference | None:
        """Where the definition lives, if known."""
        if self.uri is None:
            return None
        location = Location(line=self.line) if self.line is not None else None
        return SourceReference(uri=self.uri, location=location)

    def build_message(self) -> Envelope:
        """Build the step definition message."""
        return Envelope(
            step_definition=StepDefinitionMessage(
                id=self.id,
                pattern=StepDefinitionPattern(
                    source=self.pattern, type=self.pattern_type
                ),
                source_reference=self.source_reference or SourceReference(),
            )
        )


@dataclass(frozen=True, kw_only=True)
class PendingStep:
    """Decorator metadata waiting for its class to be linked."""

    keyword: StepKeyword
    pattern: str
    uri: str | None
    line: int | None


@dataclass(kw_only=True)
class StepRegistry:
    """Registered step definitions, in registration order.

    Locations of decorated steps are recorded relative to cwd when they lie
    below it.
    """

    cwd: Path = field(default_factory=Path.cwd)

    _definitions: dict[str, StepDefinition] = field(default_factory=dict, init=False)
    _pending: dict[Callable[..., Any], PendingStep] = field(
        default_factory=dict, init=False
    )

    def register(
        self,
        keyword: StepKeyword,
        pattern: str,
        fn: Callable[..., Any] | None = None,
        *,
        definition_id: str | None = None,
        uri: str | None = None,
        line: int | None = None,
        owner: type | None = None,
    ) -> StepDefinition:
        """Register a step definition and return it.

        Without an explicit ``definition_id`` the id is derived from the
        keyword, pattern and location, so re-registering the same step in a
        new process yields the same id.
        """
        if definition_id is None:
            definition_id = stable_id(
                "step-definition", keyword, pattern, uri or "", str(line or "")
            )
        definition = StepDefinition(
            id=definition_id,
            keyword=keyword,
            pattern=pattern,
            uri=uri,
            line=line,
            fn=fn,
            owner=owner,
        )
        self._definitions[definition_id] = definition
        log.debug("Registered step definition %s: %s", definition_id, pattern)
        return definition

    def given[F: Callable[..., Any]](self, pattern: str) -> Callable[[F], F]:
        """Mark a method as a Given step."""
        return self._decorate("Given", pattern)

    def when[F: Callable[..., Any]](self, pattern: str) -> Callable[[F], F]:
        """Mark a method as a When step."""
        return self._decorate("When", pattern)

    def then[F: Callable[..., Any]](self, pattern: str) -> Callable[[F], F]:
        """Mark a method as a Then step."""
        return self._decorate("Then", pattern)

    def step[F: Callable[..., Any]](self, pattern: str) -> Callable[[F], F]:
        """Mark a method as a step matching any keyword."""
        return self._decorate("Step", pattern)

    def _decorate[F: Callable[..., Any]](
        self, keyword: StepKeyword, pattern: str
    ) -> Callable[[F], F]:
        def decorator(fn: F) -> F:
            self._pending[fn] = PendingStep(
                keyword=keyword,
                pattern=pattern,
                uri=self._source_uri(fn),
                line=fn.__code__.co_firstlineno,
            )
            return fn

        return decorator

    def _source_uri(self, fn: Callable[..., Any]) -> str | None:
        source_file = inspect.getsourcefile(fn)
        if source_file is None:
            return None
        path = Path(source_file).resolve()
        cwd = self.cwd.resolve()
        if not path.is_relative_to(cwd):
            return source_file
        return path.relative_to(cwd).as_posix()

    def link_fixture(self, cls: type) -> Sequence[StepDefinition]:
        """Register the decorated methods of cls as steps bound to cls.

        At dispatch time the step runs against the single fixture that is an
        instance of cls.
        """
        definitions: list[StepDefinition] = []
        for value in vars(cls).values():
            pending = self._pending.pop(value, None) if callable(value) else None
            if pending is None:
                continue
            definitions.append(
                self.register(
                    pending.keyword,
                    pending.pattern,
                    value,
                    uri=pending.uri,
                    line=pending.line,
                    owner=cls,
                )
            )
        return definitions

    def get(self, definition_id: str) -> StepDefinition:
        """Return the definition registered under definition_id.

        Raises:
            IdentityResolutionError: If no such definition exists

        """
        try:
            return self._definitions[definition_id]
        except KeyError:
            raise IdentityResolutionError(
                f"Step definition '{definition_id}' is not registered"
            ) from None

    def get_source_reference(self, definition_id: str) -> SourceReference | None:
        """Return where the definition lives, or None if it has no location.

        Raises:
            IdentityResolutionError: If no such definition exists

        """
        return self.get(definition_id).source_reference

    def invoke(
        self, definition_id: str, fixtures: Mapping[str, Any], *args: Any
    ) -> Any:
        """Run a step definition.

        Steps bound to a class run against the matching fixture; plain steps
        receive the fixtures mapping as first argument.

        Raises:
            IdentityResolutionError: If the definition is unknown or has no
                implementation
            MissingHookFixtureError: If no fixture matches a bound step
            AmbiguousHookFixtureError: If several fixtures match a bound step

        """
        definition = self.get(definition_id)
        if definition.fn is None:
            raise IdentityResolutionError(
                f"Step definition '{definition_id}' has no implementation"
            )
        if definition.owner is None:
            return definition.fn(fixtures, *args)
        return definition.fn(resolve_fixture(fixtures, definition), *args)

    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def build_messages(self) -> Sequence[Envelope]:
        """Build one step definition message per registered definition."""
        return [definition.build_message() for definition in self]


def resolve_fixture(fixtures: Mapping[str, Any], definition: StepDefinition) -> Any:
    """Return the single fixture a bound step should run against."""
    names = [
        name
        for name, value in fixtures.items()
        if definition.owner is not None and isinstance(value, definition.owner)
    ]

    if not names:
        raise MissingHookFixtureError(
            f'No suitable fixtures found for step "{definition.pattern}"'
        )

    if len(names) > 1:
        raise AmbiguousHookFixtureError(
            f'Several suitable fixtures found for step "{definition.pattern}": '
            f"{', '.join(names)}"
        )

    return fixtures[names[0]]
