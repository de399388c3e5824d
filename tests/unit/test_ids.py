"""Tests for identity helpers."""

from unittest.mock import Mock

from bdd_messages.ids import get_or_create, stable_id


def test_stable_id_is_deterministic() -> None:
    """Same parts produce the same id."""
    assert stable_id("test-case", "t1") == stable_id("test-case", "t1")


def test_stable_id_distinguishes_parts() -> None:
    """Part boundaries are part of the identity."""
    assert stable_id("ab", "c") != stable_id("a", "bc")
    assert stable_id("test-case", "t1") != stable_id("test-case", "t2")


def test_get_or_create_returns_same_instance() -> None:
    """Second lookup returns the stored instance without calling factory."""
    mapping: dict[str, object] = {}
    factory = Mock(side_effect=object)

    first = get_or_create(mapping, "key", factory)
    second = get_or_create(mapping, "key", factory)

    assert first is second
    factory.assert_called_once_with()


def test_get_or_create_keeps_existing_value() -> None:
    """Existing values are never replaced."""
    existing = object()
    mapping = {"key": existing}

    assert get_or_create(mapping, "key", object) is existing
