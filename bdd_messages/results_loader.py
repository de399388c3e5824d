"""Loader for run results files."""

import asyncio
from pathlib import Path

import yaml
from pydantic import ValidationError

from bdd_messages.models.runner import RunResults


async def load_run_results(path: Path) -> RunResults:
    """Load and validate a run results file.

    Args:
        path: YAML file with the run summary, executions and step definitions

    Returns:
        The validated run results

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid YAML, is empty or does not match
            the expected schema

    """
    if not path.is_file():
        raise FileNotFoundError(f"Results file not found: {path}")

    text = await asyncio.to_thread(path.read_text, "utf-8")

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty results file: {path}")

    try:
        return RunResults.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid run results schema in {path}: {e}") from e
