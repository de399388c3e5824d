"""Fixtures for integration tests."""

from pathlib import Path
from typing import Protocol

import pytest

CART_FEATURE = """\
@cart
Feature: Cart

  Background:
    Given an empty cart

  Scenario: Add item
    When I add an item
    Then the cart holds 1 item

  Scenario Outline: Add several items
    When I add <count> items
    Then the cart holds <count> items

    Examples:
      | count |
      | 2     |
      | 3     |

  Rule: Checkout

    Scenario: Pay
      When I pay
"""


class WriteFeatureFn(Protocol):
    """Protocol for feature file creation function."""

    def __call__(self, uri: str, text: str = CART_FEATURE) -> Path:
        """Write a feature file relative to the project and return its path."""


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create an empty project directory."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def write_feature(project_dir: Path) -> WriteFeatureFn:
    """Return a function to create feature files in the project."""

    def _write(uri: str, text: str = CART_FEATURE) -> Path:
        path = project_dir / uri
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return _write
