"""Stable identifiers and get-or-create lookups."""

import uuid
from collections.abc import Callable, MutableMapping

NAMESPACE = uuid.UUID("6f6b1b8e-3d1c-4f6e-9a55-7c2b8f0d4e21")


def stable_id(*parts: str) -> str:
    """Return a deterministic id for the given identity parts.

    The same parts always produce the same id, so messages built twice from
    the same run results reference each other consistently.
    """
    return str(uuid.uuid5(NAMESPACE, "\x1f".join(parts)))


def get_or_create[K, V](
    mapping: MutableMapping[K, V], key: K, factory: Callable[[], V]
) -> V:
    """Return the value stored under key, creating it with factory if absent."""
    if key not in mapping:
        mapping[key] = factory()
    return mapping[key]
