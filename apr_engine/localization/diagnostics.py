"""
Diagnostic parsing for static fault localization.

Turns raw tool output (compiler errors, linter lines, stack traces,
tracebacks, test runner failures) into Fault records.

Each line of the input is tried against an ordered table of patterns;
the first matching pattern wins and no other pattern sees that line.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..models import Fault, FaultSeverity, FaultType, SourceLocation

logger = logging.getLogger(__name__)

# Paths that never hold the project's own code
VENDORED_MARKERS = (
    "node_modules",
    "site-packages",
    "dist-packages",
    "<frozen",
    "<string>",
)

# "at fn (file:line:col)" or "at file:line:col"
FRAME_PATTERN = re.compile(r"\bat\s+(?:\S+\s+)?\(?(?P<file>[^\s():]+):(?P<line>\d+):(?P<col>\d+)\)?")
# Python: File "path", line N
PY_FRAME_PATTERN = re.compile(r'File\s+"(?P<file>[^"]+)",\s+line\s+(?P<line>\d+)')
# Python exception summary line ending a traceback
PY_EXCEPTION_PATTERN = re.compile(
    r"^(?P<name>[A-Za-z_][\w.]*(?:Error|Exception|Warning|Exit|Interrupt))(?::\s*(?P<msg>.*))?$"
)


@dataclass(frozen=True)
class DiagnosticPattern:
    """
    One entry of the diagnostic table.

    Attributes:
        name: Short identifier, stored on the fault's metadata
        regex: Compiled pattern; named groups ``file``, ``line`` and
               optionally ``col`` give the location
        fault_type: Type assigned to faults from this pattern
        severity: Severity assigned to faults from this pattern
        has_location: False for patterns that recognize a failure but carry
                      no usable location (the line is consumed, no fault)
    """
    name: str
    regex: re.Pattern
    fault_type: FaultType
    severity: FaultSeverity
    has_location: bool = True


DIAGNOSTIC_PATTERNS: list[DiagnosticPattern] = [
    # TypeScript compiler: src/a.ts(10,5): error TS2322: ...
    DiagnosticPattern(
        "tsc",
        re.compile(r"(?P<file>[^\s(]+)\((?P<line>\d+),(?P<col>\d+)\):\s*error\s+TS\d+:\s*(?P<msg>.+)"),
        FaultType.TYPE_ERROR, FaultSeverity.HIGH,
    ),
    # mypy: pkg/mod.py:12: error: Incompatible types ...
    DiagnosticPattern(
        "mypy",
        re.compile(r"^(?P<file>[^\s:]+\.pyi?):(?P<line>\d+):(?:(?P<col>\d+):)?\s*error:\s*(?P<msg>.+)"),
        FaultType.TYPE_ERROR, FaultSeverity.HIGH,
    ),
    # gcc / clang / rustc style: file.c:10:5: error: ...
    DiagnosticPattern(
        "compiler",
        re.compile(r"^(?P<file>[^\s:]+):(?P<line>\d+):(?P<col>\d+):\s*(?:fatal\s+)?error:\s*(?P<msg>.+)"),
        FaultType.SYNTAX_ERROR, FaultSeverity.CRITICAL,
    ),
    # pytest short traceback: tests/test_a.py:42: AssertionError
    DiagnosticPattern(
        "pytest",
        re.compile(r"^(?P<file>[^\s:]+\.py):(?P<line>\d+):\s*(?P<msg>[\w.]*(?:Error|Exception|Failed)\b.*)"),
        FaultType.TEST_FAILURE, FaultSeverity.MEDIUM,
    ),
    # ESLint unix / flake8 / ruff / pylint: file:10:5: error msg | file:3:1: F401 msg
    DiagnosticPattern(
        "lint",
        re.compile(
            r"^(?P<file>[^\s:]+):(?P<line>\d+):(?P<col>\d+):?\s*"
            r"(?:(?:error|warning)\b:?\s*|[A-Z]+\d+\s+)(?P<msg>.+)"
        ),
        FaultType.LINT_ERROR, FaultSeverity.MEDIUM,
    ),
    # SyntaxError: Unexpected token at src/a.js:3
    DiagnosticPattern(
        "syntax",
        re.compile(
            r"SyntaxError:\s*(?P<msg>.+?)\s+at\s+(?:\S+\s+)?\(?(?P<file>[^\s():]+):(?P<line>\d+)",
            re.IGNORECASE,
        ),
        FaultType.SYNTAX_ERROR, FaultSeverity.CRITICAL,
    ),
    # TypeError / ReferenceError: ... at fn (file:line:col)
    DiagnosticPattern(
        "js_error",
        re.compile(
            r"(?:TypeError|ReferenceError):\s*(?P<msg>.+?)\s+at\s+(?:\S+\s+)?\(?(?P<file>[^\s():]+):(?P<line>\d+)",
            re.IGNORECASE,
        ),
        FaultType.RUNTIME_ERROR, FaultSeverity.HIGH,
    ),
    # Node.js style stack frame
    DiagnosticPattern("stack_frame", FRAME_PATTERN, FaultType.RUNTIME_ERROR, FaultSeverity.HIGH),
    # Jest: ● Suite › test name
    DiagnosticPattern(
        "jest",
        re.compile(r"●\s+(.+)\s+›\s+(.+)"),
        FaultType.TEST_FAILURE, FaultSeverity.MEDIUM,
        has_location=False,
    ),
    # pytest summary: FAILED tests/test_a.py::test_x - AssertionError
    DiagnosticPattern(
        "pytest_summary",
        re.compile(r"^FAILED\s+\S+::\S+"),
        FaultType.TEST_FAILURE, FaultSeverity.MEDIUM,
        has_location=False,
    ),
    # Python traceback frame
    DiagnosticPattern("python", PY_FRAME_PATTERN, FaultType.RUNTIME_ERROR, FaultSeverity.HIGH),
]


def is_vendored(path: str) -> bool:
    """True for third-party or interpreter-internal paths."""
    return path.startswith("internal/") or any(marker in path for marker in VENDORED_MARKERS)


def _int_group(match: re.Match, name: str) -> Optional[int]:
    value = match.groupdict().get(name)
    return int(value) if value else None


def _exception_summary(lines: list[str], start: int) -> Optional[str]:
    """First Python exception summary line at or after ``start``."""
    for line in lines[start:]:
        stripped = line.strip()
        if PY_EXCEPTION_PATTERN.match(stripped):
            return stripped
    return None


def match_line(line: str, patterns: list[DiagnosticPattern] = DIAGNOSTIC_PATTERNS):
    """
    Return (pattern, match) for the first pattern matching ``line``.

    Returns:
        A tuple, or None when no pattern matches.
    """
    for pattern in patterns:
        match = pattern.regex.search(line)
        if match:
            return pattern, match
    return None


def parse_diagnostics(
    error_text: str,
    patterns: list[DiagnosticPattern] = DIAGNOSTIC_PATTERNS,
) -> list[Fault]:
    """
    Parse error output into faults, one per matching line.

    Faults from static parsing start with suspiciousness 1.0. Python
    traceback frames take the exception summary that ends the traceback
    as their message, so strategies can match on it.
    """
    faults = []
    lines = error_text.splitlines()

    for index, raw_line in enumerate(lines):
        found = match_line(raw_line, patterns)
        if found is None:
            continue
        pattern, match = found
        if not pattern.has_location:
            logger.debug("Matched %s without a location: %s", pattern.name, raw_line.strip())
            continue

        file = match.group("file")
        if is_vendored(file):
            continue
        line_no = int(match.group("line"))

        message = raw_line.strip()
        if pattern.name == "python":
            summary = _exception_summary(lines, index + 1)
            if summary:
                message = f"{summary} [{message}]"

        faults.append(Fault(
            type=pattern.fault_type,
            severity=pattern.severity,
            message=message,
            location=SourceLocation(
                file=file,
                start_line=line_no,
                end_line=line_no,
                start_column=_int_group(match, "col"),
            ),
            suspiciousness=1.0,
            stack_trace=error_text if pattern.fault_type == FaultType.RUNTIME_ERROR else None,
            metadata={"pattern": pattern.name},
        ))

    logger.debug("Static parse produced %d fault(s)", len(faults))
    return faults


def extract_stack_frames(error_text: str) -> list[SourceLocation]:
    """
    Collect stack frame locations in order of appearance.

    Both ``at fn (file:line:col)`` frames and Python ``File "...", line N``
    frames are recognized. Vendored and interpreter-internal paths are
    dropped.
    """
    frames: list[tuple[int, SourceLocation]] = []

    for match in FRAME_PATTERN.finditer(error_text):
        file = match.group("file")
        if is_vendored(file):
            continue
        line_no = int(match.group("line"))
        frames.append((match.start(), SourceLocation(
            file=file,
            start_line=line_no,
            end_line=line_no,
            start_column=int(match.group("col")),
        )))

    for match in PY_FRAME_PATTERN.finditer(error_text):
        file = match.group("file")
        if is_vendored(file):
            continue
        line_no = int(match.group("line"))
        frames.append((match.start(), SourceLocation(file=file, start_line=line_no, end_line=line_no)))

    frames.sort(key=lambda item: item[0])
    return [location for _, location in frames]
