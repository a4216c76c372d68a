"""
Load test coverage from a coverage.py JSON report.

Produce the report with per-test contexts for exact spectrum counts:

    pytest --cov=src --cov-context=test
    coverage json --show-contexts -o coverage.json

Without contexts only aggregate coverage is available and the localizer
falls back to estimated counts.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from ..localization.sbfl import CoverageMatrix, TestCoverage

logger = logging.getLogger(__name__)


def context_test_name(context: str) -> Optional[str]:
    """
    Map a coverage.py context label to a test name.

    pytest-cov labels look like ``tests/test_a.py::test_x|run``; the phase
    suffix is dropped. The empty label marks code run outside any test.
    """
    name = context.split("|", 1)[0].strip()
    return name or None


def context_tests(report: dict) -> set[str]:
    """Every test name that appears as a context in the report."""
    tests = set()
    for data in report.get("files", {}).values():
        for contexts in data.get("contexts", {}).values():
            tests.update(filter(None, map(context_test_name, contexts)))
    return tests


def outcomes_from_failing(report: dict, failing: set[str]) -> dict[str, bool]:
    """Outcome map for a report where only the ``failing`` tests failed."""
    return {test: test not in failing for test in context_tests(report) | set(failing)}


def parse_coverage_report(
    report: dict,
    outcomes: dict[str, bool],
    failing_tests: int = 0,
    passing_tests: int = 0,
) -> TestCoverage:
    """
    Build TestCoverage from a parsed coverage.py JSON report.

    Args:
        report: The decoded JSON document
        outcomes: Mapping from test name to pass (True) / fail (False)
        failing_tests: Failing test count for reports without contexts
        passing_tests: Passing test count for reports without contexts

    Returns:
        TestCoverage with a per-test matrix when the report has contexts
    """
    files = report.get("files", {})
    matrix = CoverageMatrix()
    statement_coverage: dict[str, set[int]] = {}
    has_contexts = False

    for file, data in files.items():
        executed = set(data.get("executed_lines", []))
        statement_coverage[file] = executed

        for line_text, contexts in data.get("contexts", {}).items():
            line = int(line_text)
            for context in contexts:
                test = context_test_name(context)
                if test is None:
                    continue
                if test not in outcomes:
                    logger.debug("No outcome for context %r, skipping", test)
                    continue
                has_contexts = True
                if test not in matrix.coverage:
                    matrix.add_test_case(test, set(), outcomes[test])
                matrix.coverage[test].add((file, line))

    if has_contexts:
        # Tests that ran but covered nothing still count toward nf/np
        for test, passed in outcomes.items():
            if test not in matrix.coverage:
                matrix.add_test_case(test, set(), passed)
        return TestCoverage.from_matrix(matrix)

    if outcomes:
        failing_tests = sum(1 for passed in outcomes.values() if not passed)
        passing_tests = sum(1 for passed in outcomes.values() if passed)

    return TestCoverage(
        statement_coverage=statement_coverage,
        failing_tests=failing_tests,
        passing_tests=passing_tests,
    )


def load_coverage_json(
    path: Path,
    outcomes: Optional[dict[str, bool]] = None,
    failing_tests: int = 0,
    passing_tests: int = 0,
    failing_names: Optional[set[str]] = None,
) -> TestCoverage:
    """
    Read a coverage.py JSON report from disk. See parse_coverage_report().

    Instead of ``outcomes``, ``failing_names`` may list the failing tests;
    every other test context in the report then counts as passing.
    """
    with open(path, "r", encoding="utf-8") as f:
        report = json.load(f)
    if outcomes is None and failing_names:
        outcomes = outcomes_from_failing(report, failing_names)
    return parse_coverage_report(report, outcomes or {}, failing_tests, passing_tests)
