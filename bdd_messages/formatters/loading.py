"""Loading of formatters registered under the formatters entry-point group."""

import logging
from importlib.metadata import EntryPoint, entry_points
from typing import Any

from bdd_messages.formatters.manifest import FormatterManifest

ENTRY_POINT_GROUP = "bdd_messages.formatters"

log = logging.getLogger(__name__)


class FormatterNotFoundError(Exception):
    """Raised when no formatter is registered under a key."""


class InvalidFormatterError(TypeError):
    """Raised when an entry point does not resolve to a formatter manifest."""


def available_formatters() -> list[str]:
    """Return the registered formatter keys, sorted."""
    return sorted({entry.name for entry in entry_points(group=ENTRY_POINT_GROUP)})


def load_formatter_manifest(key: str) -> FormatterManifest[Any]:
    """Load a formatter manifest by key.

    Args:
        key: The formatter key as registered in pyproject.toml
             (e.g., "pretty", "ndjson")

    Returns:
        The formatter manifest instance

    Raises:
        FormatterNotFoundError: If no formatter with the given key is found
        InvalidFormatterError: If the entry point is not a formatter manifest

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=key)
    if not matches:
        raise FormatterNotFoundError(
            f"Formatter '{key}' not found. "
            f"Available formatters: {', '.join(available_formatters())}"
        )

    entry: EntryPoint = next(iter(matches))
    if len(matches) > 1:
        log.warning(
            "Formatter '%s' is registered %d times, using %s",
            key,
            len(matches),
            entry.value,
        )

    manifest = entry.load()
    if not isinstance(manifest, FormatterManifest):
        raise InvalidFormatterError(
            f"Entry point '{key}' ({entry.value}) is not a formatter manifest"
        )
    return manifest
