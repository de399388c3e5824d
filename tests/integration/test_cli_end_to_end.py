"""End-to-end tests running the CLI against real feature files."""

import json
from pathlib import Path

import pytest

from bdd_messages.cli import run
from bdd_messages.config import ReporterConfig

from .conftest import WriteFeatureFn

RESULTS_YAML = """
summary:
  status: failed
executions:
  - test: &add_item
      id: t-add
      title: Add item
      uri: features/cart.feature
      pickle_line: 7
    result:
      status: failed
      start_time: "2024-01-01T12:00:00Z"
      duration: 100
      retry: 0
      steps:
        - id: before
          outcome: passed
          hook: {key: login, kind: before, name: log in}
        - id: s1
          outcome: passed
          pickle_step_index: 0
          step_definition_ids: [d-empty]
        - id: s2
          outcome: failed
          error: cart is full
          pickle_step_index: 1
          step_definition_ids: [d-add]
  - test: *add_item
    result:
      status: passed
      start_time: "2024-01-01T12:00:01Z"
      duration: 80
      retry: 1
      steps:
        - id: before
          outcome: passed
          hook: {key: login, kind: before, name: log in}
        - id: s1
          outcome: passed
          pickle_step_index: 0
          step_definition_ids: [d-empty]
        - id: s2
          outcome: passed
          pickle_step_index: 1
          step_definition_ids: [d-add]
  - test:
      id: t-row-3
      title: Add several items
      uri: features/cart.feature
      pickle_line: 18
    result:
      status: passed
      start_time: "2024-01-01T12:00:02Z"
      duration: 50
step_definitions:
  - id: d-empty
    keyword: Given
    pattern: an empty cart
    uri: steps/cart.py
    line: 4
  - id: d-add
    keyword: When
    pattern: I add an item
    uri: steps/cart.py
    line: 9
"""


async def test_writes_ndjson_report(
    project_dir: Path, write_feature: WriteFeatureFn, tmp_path: Path
) -> None:
    """Builds the complete message stream into an NDJSON file."""
    write_feature("features/cart.feature")
    results = tmp_path / "results.yaml"
    results.write_text(RESULTS_YAML)
    output = tmp_path / "out" / "messages.ndjson"

    exit_code = await run(
        results,
        ReporterConfig(cwd=project_dir),
        formatter_key="ndjson",
        formatter_config_json=json.dumps({"output": str(output)}),
    )

    assert exit_code == 1
    messages = [json.loads(line) for line in output.read_text().splitlines()]
    tags = [next(iter(message)) for message in messages]
    assert tags[0] == "meta"
    assert tags[-1] == "runFinished"
    assert tags.count("source") == 1
    assert tags.count("scenarioInstance") == 4
    assert tags.count("stepDefinition") == 2
    assert tags.count("hook") == 1
    assert tags.count("testCase") == 2
    assert tags.count("attemptStarted") == 3

    add_item = next(
        m["scenarioInstance"]
        for m in messages
        if m.get("scenarioInstance", {}).get("name") == "Add item"
    )
    test_case = next(m["testCase"] for m in messages if "testCase" in m)
    assert test_case["pickleId"] == add_item["id"]
    assert test_case["testSteps"][1]["pickleStepId"] == add_item["steps"][0]["id"]

    finished = [m["attemptFinished"] for m in messages if "attemptFinished" in m]
    assert [f["willBeRetried"] for f in finished] == [True, False, False]
    assert [f["status"] for f in finished] == ["FAILED", "PASSED", "PASSED"]

    (failed_step,) = [
        m["stepFinished"]
        for m in messages
        if m.get("stepFinished", {}).get("testStepResult", {}).get("status")
        == "FAILED"
    ]
    assert failed_step["testStepResult"]["message"] == "cart is full"
    assert failed_step["sourceReference"] == {
        "uri": "steps/cart.py",
        "location": {"line": 9},
    }

    assert messages[-1]["runFinished"]["success"] is False


async def test_pretty_output(
    project_dir: Path,
    write_feature: WriteFeatureFn,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Pretty formatter prints progress and the summary to stdout."""
    write_feature("features/cart.feature")
    results = tmp_path / "results.yaml"
    results.write_text(RESULTS_YAML)

    exit_code = await run(
        results,
        ReporterConfig(cwd=project_dir),
        formatter_key="pretty",
        formatter_config_json=json.dumps({"cwd": str(project_dir)}),
    )

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "📋 Scenario (1): Add item" in out
    assert "Feature: Cart (features/cart.feature:7)" in out
    assert "Tags: @cart" in out
    assert "    ❌ I add an item" in out
    assert "Error: cart is full" in out
    assert "will be retried" in out
    assert "📋 Scenario (3): Add several items" in out
    assert "Total Scenarios: 2" in out
    assert "✅ PASSED: 2" in out
