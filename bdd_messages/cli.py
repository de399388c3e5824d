"""CLI entry point building protocol messages from a run results file."""

import argparse
import asyncio
import logging
import sys
from collections import Counter
from functools import partial
from pathlib import Path

from bdd_messages.builder import BuilderRegistry, MessagesBuilder
from bdd_messages.config import ReporterConfig
from bdd_messages.formatters.loading import (
    available_formatters,
    load_formatter_manifest,
)
from bdd_messages.models.runner import RunResults
from bdd_messages.reporter import MessagesReporter
from bdd_messages.results_loader import load_run_results
from bdd_messages.steps import StepRegistry


def log_results_summary(log: logging.Logger, results: RunResults) -> None:
    """Log attempt counts per outcome and the overall run status."""
    counts = Counter(execution.result.status for execution in results.executions)
    log.info(
        "Run %s: %d attempt(s) of %d test(s)",
        results.summary.status,
        len(results.executions),
        len({execution.test.id for execution in results.executions}),
    )
    for status, count in sorted(counts.items()):
        log.info("  %s: %d", status, count)


def create_step_registry(results: RunResults, cwd: Path) -> StepRegistry:
    """Register the step definitions recorded in the results file."""
    registry = StepRegistry(cwd=cwd)
    for record in results.step_definitions:
        registry.register(
            record.keyword,
            record.pattern,
            definition_id=record.id,
            uri=record.uri,
            line=record.line,
        )
    return registry


async def run(
    results_path: Path,
    reporter_config: ReporterConfig,
    formatter_key: str = "pretty",
    formatter_config_json: str = "{}",
) -> int:
    """Build and emit messages for a finished run and return exit code."""
    log = logging.getLogger("bdd_messages")

    log.info("Loading formatter: %s", formatter_key)
    manifest = load_formatter_manifest(formatter_key)

    config = manifest.parse_config(formatter_config_json)

    log.info("Loading run results from %s", results_path)
    results = await load_run_results(results_path)

    if not results.executions:
        log.info("No test executions recorded")
        return 0

    log_results_summary(log, results)

    registry = BuilderRegistry(
        builder_factory=partial(
            MessagesBuilder,
            cwd=reporter_config.cwd,
            step_definitions=create_step_registry(results, reporter_config.cwd),
        )
    )
    ref = registry.acquire(reporter_config.run_id)
    try:
        async with manifest.open(config) as formatter:
            reporter = MessagesReporter(ref=ref, sink=formatter)
            for execution in results.executions:
                reporter.on_test_finished(execution.test, execution.result)
            reporter.on_run_finished(results.summary)
            await reporter.finished()
    finally:
        registry.release(ref)

    return 0 if results.summary.status == "passed" else 1


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Build cucumber messages from test run results"
    )
    parser.add_argument(
        "--results",
        type=Path,
        required=True,
        help="Path to the run results YAML file",
    )
    parser.add_argument(
        "--cwd",
        type=Path,
        default=None,
        help="Directory feature file paths are relative to (default: current)",
    )
    parser.add_argument(
        "--formatter",
        default="pretty",
        help=f"Formatter key ({', '.join(available_formatters())})",
    )
    parser.add_argument(
        "--formatter-config",
        default="{}",
        help="JSON configuration for the formatter",
    )
    parser.add_argument(
        "--run-id",
        default="default",
        help="Identifier of the run the reporters share",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    reporter_config = ReporterConfig(run_id=args.run_id)
    if args.cwd is not None:
        reporter_config = ReporterConfig(cwd=args.cwd, run_id=args.run_id)

    exit_code = asyncio.run(
        run(
            results_path=args.results,
            reporter_config=reporter_config,
            formatter_key=args.formatter,
            formatter_config_json=args.formatter_config,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
