"""Message building for executed test runs."""

from bdd_messages.builder.builder import (
    BuilderRef,
    BuilderRegistry,
    BuildState,
    MessagesBuilder,
)

__all__ = ["BuildState", "BuilderRef", "BuilderRegistry", "MessagesBuilder"]
