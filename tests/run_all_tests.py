#!/usr/bin/env python3
"""
Run all apr-engine tests.

Usage: python tests/run_all_tests.py
       python tests/run_all_tests.py --include-cli
"""

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tests.test_metrics import run_tests as run_metrics_tests
from tests.test_sbfl import run_tests as run_sbfl_tests
from tests.test_coverage_loader import run_tests as run_coverage_tests
from tests.test_localizer import run_tests as run_localizer_tests
from tests.test_strategies import run_tests as run_strategy_tests
from tests.test_candidates import run_tests as run_candidate_tests
from tests.test_claude_client import run_tests as run_client_tests
from tests.test_patching import run_tests as run_patching_tests
from tests.test_executors import run_tests as run_executor_tests
from tests.test_validator import run_tests as run_validator_tests
from tests.test_validation_loop import run_tests as run_loop_tests
from tests.test_conversational import run_tests as run_conversational_tests
from tests.test_learning import run_tests as run_learning_tests
from tests.test_engine import run_tests as run_engine_tests

SUITES = [
    ("METRICS", "Metrics", run_metrics_tests),
    ("SBFL", "SBFL", run_sbfl_tests),
    ("COVERAGE LOADER", "Coverage Loader", run_coverage_tests),
    ("FAULT LOCALIZER", "Localizer", run_localizer_tests),
    ("STRATEGIES", "Strategies", run_strategy_tests),
    ("CANDIDATE GENERATION", "Candidates", run_candidate_tests),
    ("CLAUDE CLIENT", "Claude Client", run_client_tests),
    ("PATCHING", "Patching", run_patching_tests),
    ("EXECUTORS", "Executors", run_executor_tests),
    ("VALIDATOR", "Validator", run_validator_tests),
    ("VALIDATION LOOP", "Validation Loop", run_loop_tests),
    ("CONVERSATIONAL REPAIR", "Conversational", run_conversational_tests),
    ("LEARNING", "Learning", run_learning_tests),
    ("ENGINE", "Engine", run_engine_tests),
]


def main():
    include_cli = "--include-cli" in sys.argv

    print("=" * 70)
    print("apr-engine - Test Suite")
    print("=" * 70)

    results = []

    for title, name, run in SUITES:
        print("\n\n" + "=" * 70)
        print(f"{title} TESTS")
        print("=" * 70)
        results.append((name, run()))

    if include_cli:
        print("\n\n" + "=" * 70)
        print("COMMAND LINE TESTS (runs shell commands in a temp project)")
        print("=" * 70)
        from tests.test_main import run_tests as run_cli_tests
        results.append(("Command Line", run_cli_tests()))

    print("\n\n" + "=" * 70)
    print("SUMMARY")
    print("=" * 70)

    all_passed = True
    for name, result in results:
        status = "PASSED" if result == 0 else "FAILED"
        print(f"  {name}: {status}")
        if result != 0:
            all_passed = False

    if all_passed:
        print("\n✓ All test suites passed!")
        return 0
    else:
        print("\n✗ Some tests failed!")
        return 1


if __name__ == "__main__":
    sys.exit(main())
