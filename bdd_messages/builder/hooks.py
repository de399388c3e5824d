"""Deduplicated hooks referenced by test steps."""

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from bdd_messages.ids import get_or_create, stable_id
from bdd_messages.models.messages import (
    Envelope,
    HookType,
    Location,
    SourceReference,
)
from bdd_messages.models.messages import Hook as HookMessage
from bdd_messages.models.runner import HookKind, HookRef

HOOK_KIND_TO_TYPE: Mapping[HookKind, HookType] = {
    "before_all": "BEFORE_TEST_RUN",
    "after_all": "AFTER_TEST_RUN",
    "before": "BEFORE_TEST_CASE",
    "after": "AFTER_TEST_CASE",
}


@dataclass(frozen=True, kw_only=True)
class Hook:
    """Hook definition, identified by its internal key."""

    ref: HookRef

    @property
    def id(self) -> str:
        """Protocol id of the hook."""
        return stable_id("hook", self.ref.key)

    def build_message(self) -> Envelope:
        """Build the hook message."""
        location = Location(line=self.ref.line) if self.ref.line is not None else None
        return Envelope(
            hook=HookMessage(
                id=self.id,
                name=self.ref.name,
                type=HOOK_KIND_TO_TYPE[self.ref.kind],
                source_reference=SourceReference(uri=self.ref.uri, location=location),
                tag_expression=self.ref.tag_expression,
            )
        )


@dataclass(kw_only=True)
class HookRegistry:
    """Hooks seen during a run, in first-registration order."""

    _hooks: dict[str, Hook] = field(default_factory=dict, init=False)

    def get_or_create(self, ref: HookRef) -> Hook:
        """Return the hook registered under ref.key, registering it if needed."""
        return get_or_create(self._hooks, ref.key, lambda: Hook(ref=ref))

    def __iter__(self) -> Iterator[Hook]:
        return iter(self._hooks.values())

    def __len__(self) -> int:
        return len(self._hooks)

    def build_messages(self) -> Sequence[Envelope]:
        """Build one hook message per registered hook."""
        return [hook.build_message() for hook in self]
