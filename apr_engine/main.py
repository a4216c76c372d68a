"""
apr-engine - command line entry point.

Repair flow:
1. Read the error output from a file, or collect it by running a command
2. Capture a test baseline when a test command is given
3. Localize, generate and validate candidates for every fault
4. Print a report per fault and optionally save a JSON report

Patches are applied in place under --cwd. A rejected candidate is always
rolled back; only accepted fixes remain on disk.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import anthropic

from .config import FaultLocalizationConfig, RepairConfig
from .coverage.loader import load_coverage_json
from .engine import RepairEngine
from .localization.metrics import SuspiciousnessMetric
from .logging_config import setup_logging
from .models import RepairResult
from .repair.claude_client import DEFAULT_MODEL, ClaudeClient
from .validation.executors import LocalFileSystem, ShellTestExecutor, run_command

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="apr-engine - Automated Program Repair from diagnostic output"
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--error-file", help="File containing compiler/test/lint output")
    source.add_argument("--command", help="Build or lint command whose output is repaired")
    parser.add_argument("--test-command", help="Command that runs the test suite")
    parser.add_argument("--cwd", default=".", help="Project root (default: current directory)")
    parser.add_argument("--max-iterations", type=int, default=3, help="Validation rounds per fault")
    parser.add_argument("--max-candidates", type=int, default=5, help="Candidate budget per fault")
    parser.add_argument(
        "--metric",
        choices=[m.value for m in SuspiciousnessMetric],
        default=SuspiciousnessMetric.OCHIAI.value,
        help="Suspiciousness metric for coverage spectra",
    )
    parser.add_argument("--no-templates", action="store_true", help="Disable template candidates")
    parser.add_argument("--no-llm", action="store_true", help="Disable model-generated candidates")
    parser.add_argument("--coverage-json", help="coverage.py JSON report (coverage json --show-contexts)")
    parser.add_argument(
        "--failing-test", action="append", default=[],
        help="Name of a failing test context in the coverage report (repeatable)",
    )
    parser.add_argument("--context-hint", help="Extra context passed to the model")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Claude model for candidate generation")
    parser.add_argument("--test-timeout", type=float, default=120.0, help="Seconds per test run")
    parser.add_argument("--output", help="Write a JSON report to this path")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def build_config(args) -> RepairConfig:
    return RepairConfig(
        use_templates=not args.no_templates,
        use_llm=not args.no_llm,
        max_candidates=args.max_candidates,
        max_iterations=args.max_iterations,
        validate_with_tests=bool(args.test_command),
        test_timeout=args.test_timeout,
        fault_localization=FaultLocalizationConfig(metric=args.metric),
    )


def build_client(args) -> Optional[ClaudeClient]:
    if args.no_llm:
        return None
    try:
        return ClaudeClient(model=args.model)
    except anthropic.AnthropicError as e:
        logger.warning("Model-guided repair disabled: %s", e)
        return None


def result_report(result: RepairResult) -> dict:
    """JSON-friendly summary of one result."""
    report = {
        "fault": {
            "type": result.fault.type.value,
            "severity": result.fault.severity.value,
            "message": result.fault.message,
            "location": str(result.fault.location),
            "suspiciousness": round(result.fault.suspiciousness, 4),
        },
        "success": result.success,
        "state": result.state.value,
        "iterations": result.iterations,
        "candidates_generated": result.candidates_generated,
        "candidates_tested": result.candidates_tested,
        "duration": round(result.duration, 3),
        "reason": result.reason,
    }
    if result.applied_patch is not None:
        patch = result.applied_patch
        report["patch"] = {
            "strategy": patch.strategy,
            "generated_by": patch.generated_by,
            "confidence": patch.confidence,
            "explanation": patch.explanation,
            "changes": [
                {
                    "file": c.file,
                    "start_line": c.start_line,
                    "end_line": c.end_line,
                    "original": c.original_text,
                    "fixed": c.new_text,
                }
                for c in patch.changes
            ],
        }
    return report


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    root = Path(args.cwd).resolve()
    if not root.is_dir():
        print(f"Error: --cwd is not a directory: {root}")
        sys.exit(2)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(2)

    fs = LocalFileSystem(root)
    test_executor = None
    if args.test_command:
        test_executor = ShellTestExecutor(args.test_command, cwd=root, timeout=args.test_timeout)
        test_executor.capture_baseline()

    engine = RepairEngine(
        config,
        client=build_client(args),
        test_executor=test_executor,
        file_reader=fs.read,
        file_writer=fs.write,
        command_executor=lambda command: run_command(command, cwd=root, timeout=args.test_timeout),
    )

    if args.error_file:
        error_path = Path(args.error_file)
        if not error_path.exists():
            print(f"Error: --error-file does not exist: {error_path}")
            sys.exit(2)
        error_output = error_path.read_text(encoding="utf-8", errors="replace")
    else:
        error_output = engine.collect_errors(args.command)

    if not error_output.strip():
        print("No diagnostics to repair.")
        sys.exit(0)

    coverage = None
    if args.coverage_json:
        coverage = load_coverage_json(
            Path(args.coverage_json), failing_names=set(args.failing_test),
        )

    results = engine.repair(error_output, context_hint=args.context_hint, coverage=coverage)
    if not results:
        print("No faults could be localized from the error output.")

    for result in results:
        print(engine.format_result(result))

    stats = engine.statistics()
    print(f"Repaired {stats.repaired_faults}/{stats.total_faults} fault(s)")

    if args.output:
        report = {
            "success": bool(results) and all(r.success for r in results),
            "statistics": {
                "total_faults": stats.total_faults,
                "repaired_faults": stats.repaired_faults,
                "failed_faults": stats.failed_faults,
                "success_rate": stats.success_rate,
                "strategy_successes": stats.strategy_successes,
            },
            "results": [result_report(r) for r in results],
        }
        if engine.client is not None:
            usage = engine.client.usage
            report["tokens"] = {"input": usage.input_tokens, "output": usage.output_tokens}
        Path(args.output).write_text(json.dumps(report, indent=2))
        print(f"Report saved to {args.output}")

    sys.exit(0 if results and all(r.success for r in results) else 1)


if __name__ == "__main__":
    main()
