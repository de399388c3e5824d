"""Tests for run results loader."""

from pathlib import Path

import pytest

from bdd_messages.results_loader import load_run_results


class TestLoadRunResults:
    """Tests for load_run_results function."""

    __test__ = True

    async def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        """Loads and validates a results file."""
        path = tmp_path / "results.yaml"
        path.write_text(
            """
summary:
  status: failed
executions:
  - test:
      id: t1
      title: Add item
      uri: features/cart.feature
      pickle_line: 3
    result:
      status: failed
      start_time: "2024-01-01T12:00:00Z"
      duration: 120.5
      steps:
        - id: s1
          outcome: failed
          duration: 20
          error: boom
          pickle_step_index: 0
          step_definition_ids: [d1]
step_definitions:
  - id: d1
    keyword: When
    pattern: I add an item
    uri: steps/cart.py
    line: 12
"""
        )

        results = await load_run_results(path)

        assert results.summary.status == "failed"
        assert len(results.executions) == 1
        execution = results.executions[0]
        assert execution.test.pickle_line == 3
        assert execution.result.duration == 120.5
        assert execution.result.steps[0].error == "boom"
        assert results.step_definitions[0].keyword == "When"

    async def test_defaults_to_no_executions(self, tmp_path: Path) -> None:
        """Only the summary is required."""
        path = tmp_path / "results.yaml"
        path.write_text("summary:\n  status: passed\n")

        results = await load_run_results(path)

        assert results.executions == []
        assert results.step_definitions == []

    async def test_raises_for_missing_file(self, tmp_path: Path) -> None:
        """Raises FileNotFoundError for missing file."""
        with pytest.raises(FileNotFoundError, match="Results file not found"):
            await load_run_results(tmp_path / "missing.yaml")

    async def test_raises_for_invalid_yaml(self, tmp_path: Path) -> None:
        """Raises ValueError for malformed YAML."""
        path = tmp_path / "results.yaml"
        path.write_text("invalid: yaml: content: [")

        with pytest.raises(ValueError, match="Invalid YAML"):
            await load_run_results(path)

    async def test_raises_for_empty_file(self, tmp_path: Path) -> None:
        """Raises ValueError for empty file."""
        path = tmp_path / "results.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="Empty results file"):
            await load_run_results(path)

    async def test_raises_for_invalid_schema(self, tmp_path: Path) -> None:
        """Raises ValueError when the content does not match the schema."""
        path = tmp_path / "results.yaml"
        path.write_text("summary:\n  status: unknown\n")

        with pytest.raises(ValueError, match="Invalid run results schema"):
            await load_run_results(path)
