"""
Data model for the repair pipeline.

Records flow leaf-first through the engine:
    error text -> Fault -> Patch (with PatchChange) -> ValidationResult
    -> RepairResult -> RepairSession

Faults, patches and validation results are plain dataclasses passed by
reference within one repair call. They are never shared across sessions.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class FaultType(Enum):
    """Kind of fault reported by a diagnostic matcher."""
    SYNTAX_ERROR = "syntax_error"
    TYPE_ERROR = "type_error"
    LINT_ERROR = "lint_error"
    RUNTIME_ERROR = "runtime_error"
    TEST_FAILURE = "test_failure"
    UNKNOWN = "unknown"


class FaultSeverity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RepairState(Enum):
    """States of the validation state machine."""
    LOCALIZED = "localized"
    CANDIDATES_GENERATED = "candidates_generated"
    VALIDATING = "validating"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


def new_id(prefix: str) -> str:
    """Short unique identifier, e.g. ``fault-1a2b3c4d``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@dataclass
class SourceLocation:
    """
    A 1-based line range inside a file.

    Attributes:
        file: Path as reported by the diagnostic (relative or absolute)
        start_line: First line of the range
        end_line: Last line of the range (>= start_line)
        start_column: Optional 1-based column
        end_column: Optional 1-based column
        snippet: Optional source text surrounding the range
    """
    file: str
    start_line: int
    end_line: Optional[int] = None
    start_column: Optional[int] = None
    end_column: Optional[int] = None
    snippet: Optional[str] = None

    def __post_init__(self):
        if self.end_line is None or self.end_line < self.start_line:
            self.end_line = self.start_line

    @property
    def key(self) -> tuple[str, int]:
        """Identity used for deduplication and score fusion."""
        return (self.file, self.start_line)

    def __str__(self) -> str:
        return f"{self.file}:{self.start_line}"


@dataclass
class Fault:
    """A localized suspect code location."""
    type: FaultType
    severity: FaultSeverity
    message: str
    location: SourceLocation
    related_locations: list[SourceLocation] = field(default_factory=list)
    suspiciousness: float = 1.0
    stack_trace: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("fault"))


@dataclass
class SuspiciousStatement:
    """A covered line with its spectrum counts and score."""
    location: SourceLocation
    suspiciousness: float
    metric: str
    ef: int = 0  # failing tests executing the line
    ep: int = 0  # passing tests executing the line
    nf: int = 0  # failing tests not executing the line
    np: int = 0  # passing tests not executing the line


@dataclass
class PatchChange:
    """Replacement of lines ``start_line..end_line`` of ``file`` with ``new_text``."""
    file: str
    start_line: int
    end_line: int
    original_text: str
    new_text: str
    kind: str = "replace"


@dataclass
class ValidationResult:
    """
    Outcome of running the tests against a patched tree.

    ``new_failures`` lists failures the patch introduced (tests or error
    messages absent before it was applied). A candidate is accepted only if
    ``success`` is true and ``new_failures`` is empty.
    """
    success: bool
    tests_run: int = 0
    tests_passed: int = 0
    tests_failed: int = 0
    failing_tests: list[str] = field(default_factory=list)
    new_failures: list[str] = field(default_factory=list)
    regressions: list[str] = field(default_factory=list)
    fixed_errors: list[str] = field(default_factory=list)
    compiled: bool = True
    duration: float = 0.0

    @property
    def accepted(self) -> bool:
        return self.success and not self.new_failures

    @classmethod
    def failure(cls, *errors: str, compiled: bool = True, duration: float = 0.0) -> "ValidationResult":
        """Synthetic failing result carrying the given error messages."""
        return cls(
            success=False,
            failing_tests=list(errors),
            new_failures=list(errors),
            compiled=compiled,
            duration=duration,
        )

    def __str__(self) -> str:
        status = "PASS" if self.accepted else "FAIL"
        return f"{status} ({self.tests_passed}/{self.tests_run} passed, {len(self.new_failures)} new failures)"


@dataclass
class Patch:
    """A candidate change tied to one fault."""
    fault: Fault
    changes: list[PatchChange]
    strategy: str
    generated_by: str
    confidence: float
    explanation: str = ""
    validated: bool = False
    test_results: Optional[ValidationResult] = None
    id: str = field(default_factory=lambda: new_id("patch"))

    @property
    def files(self) -> list[str]:
        """Files touched by the patch, in first-change order."""
        seen: list[str] = []
        for change in self.changes:
            if change.file not in seen:
                seen.append(change.file)
        return seen

    @property
    def text(self) -> str:
        return "\n".join(change.new_text for change in self.changes)


@dataclass
class RepairResult:
    """Per-fault outcome."""
    fault: Fault
    success: bool = False
    candidates_generated: int = 0
    candidates_tested: int = 0
    all_patches: list[Patch] = field(default_factory=list)
    iterations: int = 0
    applied_patch: Optional[Patch] = None
    reason: Optional[str] = None
    duration: float = 0.0
    state: RepairState = RepairState.LOCALIZED


@dataclass
class RepairStats:
    """Running aggregate over repair results."""
    total_faults: int = 0
    repaired_faults: int = 0
    failed_faults: int = 0
    average_iterations: float = 0.0
    average_candidates: float = 0.0
    average_duration: float = 0.0
    strategy_successes: dict[str, int] = field(default_factory=dict)
    template_success_rates: dict[str, float] = field(default_factory=dict)

    def update(self, result: RepairResult) -> None:
        """Fold one result into the running averages."""
        self.total_faults += 1
        if result.success:
            self.repaired_faults += 1
        else:
            self.failed_faults += 1

        n = self.total_faults
        self.average_iterations = ((n - 1) * self.average_iterations + result.iterations) / n
        self.average_candidates = ((n - 1) * self.average_candidates + result.candidates_generated) / n
        self.average_duration = ((n - 1) * self.average_duration + result.duration) / n

        if result.applied_patch is not None:
            strategy = result.applied_patch.strategy
            self.strategy_successes[strategy] = self.strategy_successes.get(strategy, 0) + 1

    @property
    def success_rate(self) -> float:
        if self.total_faults == 0:
            return 0.0
        return self.repaired_faults / self.total_faults


@dataclass
class RepairSession:
    """One top-level ``repair()`` call."""
    config: dict[str, Any]
    faults: list[Fault] = field(default_factory=list)
    results: list[RepairResult] = field(default_factory=list)
    stats: RepairStats = field(default_factory=RepairStats)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    cancelled: bool = False
    id: str = field(default_factory=lambda: new_id("session"))


@dataclass
class LearningRecord:
    """A successful repair kept for strategy re-ordering and statistics."""
    fault: Fault
    successful_patch: Patch
    failed_patches: list[Patch] = field(default_factory=list)
    code_context: str = ""
    file_type: str = "unknown"


@dataclass
class ConversationTurn:
    """One role-tagged message of a repair dialogue."""
    role: str  # system | user | assistant
    content: str
