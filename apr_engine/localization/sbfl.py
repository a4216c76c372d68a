"""
Spectrum-Based Fault Localization (SBFL).

Ranks covered statements by how strongly their execution correlates with
test failures.

Two kinds of coverage input are supported:
- A per-test CoverageMatrix (exact ef/ep counts for every statement)
- Aggregate TestCoverage (which lines ran at all, plus how many tests
  passed and failed). Counts are then estimated from the size of each
  file's coverage set. This is an approximation; prefer a matrix whenever
  per-test coverage is available.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from ..models import SourceLocation, SuspiciousStatement
from .metrics import SuspiciousnessMetric, score

Statement = tuple[str, int]  # (file, line)


@dataclass
class CoverageMatrix:
    """
    Coverage data at TEST CASE level.

    Attributes:
        coverage: Mapping from test case name to the statements it executed.
                  e.g., {"test_a": {("src/a.py", 10), ("src/a.py", 11)}}
        results: Mapping from test case name to pass/fail status.
                 e.g., {"test_a": False}
    """
    coverage: dict[str, set[Statement]] = field(default_factory=dict)
    results: dict[str, bool] = field(default_factory=dict)

    @property
    def all_statements(self) -> set[Statement]:
        """Union of all statements covered by any test case."""
        if not self.coverage:
            return set()
        return set().union(*self.coverage.values())

    @property
    def test_cases(self) -> list[str]:
        return list(self.coverage.keys())

    @property
    def num_failing(self) -> int:
        return sum(1 for passed in self.results.values() if not passed)

    @property
    def num_passing(self) -> int:
        return sum(1 for passed in self.results.values() if passed)

    @property
    def failing_tests(self) -> list[str]:
        return [name for name, passed in self.results.items() if not passed]

    def add_test_case(self, name: str, statements: set[Statement], passed: bool) -> None:
        """Add a test case to the coverage matrix."""
        self.coverage[name] = set(statements)
        self.results[name] = passed

    def counts(self, statement: Statement) -> tuple[int, int, int, int]:
        """
        Compute the four spectrum counts for a statement.

        Returns:
            (ef, ep, nf, np)
        """
        ef = 0
        ep = 0
        for name, statements in self.coverage.items():
            if statement in statements:
                if self.results[name]:
                    ep += 1
                else:
                    ef += 1
        return ef, ep, self.num_failing - ef, self.num_passing - ep


@dataclass
class TestCoverage:
    """
    Coverage input for localization.

    Attributes:
        statement_coverage: Mapping from file to the set of executed lines
        failing_tests: Number of failing tests in the run
        passing_tests: Number of passing tests in the run
        total_tests: Total number of tests (defaults to failing + passing)
        matrix: Optional per-test coverage for exact counts
    """
    __test__ = False  # keep pytest from collecting this class

    statement_coverage: dict[str, set[int]] = field(default_factory=dict)
    failing_tests: int = 0
    passing_tests: int = 0
    total_tests: Optional[int] = None
    matrix: Optional[CoverageMatrix] = None

    def __post_init__(self):
        if self.total_tests is None:
            self.total_tests = self.failing_tests + self.passing_tests

    @classmethod
    def from_matrix(cls, matrix: CoverageMatrix) -> "TestCoverage":
        """Derive aggregate coverage from a per-test matrix."""
        by_file: dict[str, set[int]] = {}
        for file, line in matrix.all_statements:
            by_file.setdefault(file, set()).add(line)
        return cls(
            statement_coverage=by_file,
            failing_tests=matrix.num_failing,
            passing_tests=matrix.num_passing,
            matrix=matrix,
        )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_counts(coverage: TestCoverage, file: str, line: int) -> tuple[int, int, int, int]:
    """
    Estimate (ef, ep, nf, np) for a line from aggregate counts.

    Every covered line of a file gets the same estimate: the failing and
    passing totals scaled by the file's coverage-set size over the number
    of tests, capped at the totals.
    """
    covered = coverage.statement_coverage.get(file, set())
    if line not in covered:
        return 0, 0, coverage.failing_tests, coverage.passing_tests

    ratio = len(covered) / (coverage.total_tests or 1)
    ef = min(coverage.failing_tests, _round_half_up(coverage.failing_tests * ratio))
    ep = min(coverage.passing_tests, _round_half_up(coverage.passing_tests * ratio))
    return ef, ep, coverage.failing_tests - ef, coverage.passing_tests - ep


class SpectrumAnalyzer:
    """
    Computes SuspiciousStatement records from coverage.

    Usage:
        analyzer = SpectrumAnalyzer(SuspiciousnessMetric.OCHIAI, threshold=0.3)
        statements = analyzer.analyze(coverage)
    """

    def __init__(
        self,
        metric: SuspiciousnessMetric = SuspiciousnessMetric.OCHIAI,
        threshold: float = 0.0,
    ):
        self.metric = metric
        self.threshold = threshold

    def counts(self, coverage: TestCoverage, file: str, line: int) -> tuple[int, int, int, int]:
        """Exact counts from the matrix when present, estimated otherwise."""
        if coverage.matrix is not None:
            return coverage.matrix.counts((file, line))
        return estimate_counts(coverage, file, line)

    def analyze(self, coverage: TestCoverage) -> list[SuspiciousStatement]:
        """
        Score every covered line and keep those at or above the threshold.

        Returns:
            Statements sorted by suspiciousness (highest first). Ties are
            broken by file then line number.
        """
        statements = []
        for file, lines in coverage.statement_coverage.items():
            for line in sorted(set(lines)):
                ef, ep, nf, np = self.counts(coverage, file, line)
                suspiciousness = score(self.metric, ef, ep, nf, np)
                if suspiciousness < self.threshold:
                    continue
                statements.append(SuspiciousStatement(
                    location=SourceLocation(file=file, start_line=line, end_line=line),
                    suspiciousness=suspiciousness,
                    metric=self.metric.value,
                    ef=ef,
                    ep=ep,
                    nf=nf,
                    np=np,
                ))

        statements.sort(key=lambda s: (-s.suspiciousness, s.location.file, s.location.start_line))
        return statements
