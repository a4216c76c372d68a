"""
Collaborators for running tests, shell commands and file IO.

The repair pipeline accepts any callables with these shapes:

    TestExecutor()              -> ValidationResult
    CommandExecutor(command)    -> CommandResult
    FileReader(path)            -> str
    FileWriter(path, text)      -> None

This module provides subprocess- and filesystem-backed implementations for
the command line, plus call_with_timeout() for bounding any collaborator.
"""

import concurrent.futures
import logging
import re
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Type, Union

from ..errors import CollaboratorTimeout
from ..models import ValidationResult

logger = logging.getLogger(__name__)

TestExecutor = Callable[[], ValidationResult]
FileReader = Callable[[str], str]
FileWriter = Callable[[str, str], None]

MAX_EXTRACTED_ERRORS = 10
COMMAND_TIMED_OUT = "Command timed out"


def call_with_timeout(
    func: Callable[..., Any],
    timeout: Optional[float],
    error: Type[CollaboratorTimeout],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """
    Call ``func`` and wait at most ``timeout`` seconds for it.

    The call runs on a worker thread. On timeout ``error(timeout)`` is raised
    and the worker is abandoned; a subprocess-backed collaborator should
    enforce its own bound as well. A timeout of None or <= 0 calls directly.
    """
    if not timeout or timeout <= 0:
        return func(*args, **kwargs)

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise error(timeout) from None
    finally:
        executor.shutdown(wait=False)


@dataclass
class CommandResult:
    """Result of a shell command."""
    success: bool
    output: str = ""
    error: str = ""
    returncode: Optional[int] = None


def run_command(command: str, cwd: Optional[Path] = None, timeout: Optional[float] = None) -> CommandResult:
    """Run a shell command, capturing stdout and stderr."""
    try:
        result = subprocess.run(
            command,
            shell=True,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        output = e.stdout.decode(errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        return CommandResult(success=False, output=output, error=COMMAND_TIMED_OUT)
    except OSError as e:
        return CommandResult(success=False, error=str(e))

    return CommandResult(
        success=result.returncode == 0,
        output=result.stdout,
        error=result.stderr,
        returncode=result.returncode,
    )


# Test output scraping. Counts are best-effort.

_PYTEST_COUNT = re.compile(r"(\d+) (passed|failed|errors?)\b")
_JEST_TESTS = re.compile(r"^Tests:\s+(.+?)$", re.MULTILINE)
_JEST_COUNT = re.compile(r"(\d+) (passed|failed|total)\b")
_GENERIC_RUN = re.compile(r"(\d+)\s*tests?\b", re.IGNORECASE)
_GENERIC_PASSED = re.compile(r"(\d+)\s*pass", re.IGNORECASE)
_GENERIC_FAILED = re.compile(r"(\d+)\s*fail", re.IGNORECASE)
_PYTEST_FAILED_NAME = re.compile(r"^(?:FAILED|ERROR) (\S+)", re.MULTILINE)
_JEST_FAILED_NAME = re.compile(r"^\s*[✕×]\s+(.+?)(?:\s+\(\d+\s*ms\))?$", re.MULTILINE)
_ERROR_PATTERNS = [
    re.compile(r"^\s*E\s+(\w+(?:Error|Exception): .+)$", re.MULTILINE),
    re.compile(r"\b((?:Type|Syntax|Reference|Range|Assertion|Attribute|Name|Value|Key|Index)Error: .+)"),
    re.compile(r"\berror(?: TS\d+)?: (.+)", re.IGNORECASE),
    re.compile(r"\bfailed: (.+)", re.IGNORECASE),
]
_COMPILE_ERROR = re.compile(r"compil|syntax", re.IGNORECASE)


@dataclass
class TestCounts:
    __test__ = False
    run: int = 0
    passed: int = 0
    failed: int = 0


def parse_test_counts(output: str) -> TestCounts:
    """Scrape run/passed/failed counts from pytest, jest or generic output."""
    jest = _JEST_TESTS.search(output)
    if jest:
        counts = {kind: int(n) for n, kind in _JEST_COUNT.findall(jest.group(1))}
        passed = counts.get("passed", 0)
        failed = counts.get("failed", 0)
        return TestCounts(run=counts.get("total", passed + failed), passed=passed, failed=failed)

    pytest_counts = _PYTEST_COUNT.findall(output)
    if pytest_counts:
        counts: dict[str, int] = {}
        for n, kind in pytest_counts:
            key = "failed" if kind.startswith("error") else kind
            counts[key] = counts.get(key, 0) + int(n)
        passed = counts.get("passed", 0)
        failed = counts.get("failed", 0)
        return TestCounts(run=passed + failed, passed=passed, failed=failed)

    def first(pattern: re.Pattern) -> int:
        match = pattern.search(output)
        return int(match.group(1)) if match else 0

    return TestCounts(run=first(_GENERIC_RUN), passed=first(_GENERIC_PASSED), failed=first(_GENERIC_FAILED))


def failing_test_names(output: str) -> list[str]:
    names = _PYTEST_FAILED_NAME.findall(output) + _JEST_FAILED_NAME.findall(output)
    return list(dict.fromkeys(name.strip() for name in names))


def extract_errors(output: str) -> list[str]:
    """Distinct error messages found in test output, in order, capped at 10."""
    errors: list[str] = []
    for pattern in _ERROR_PATTERNS:
        errors.extend(match.strip() for match in pattern.findall(output))
    return list(dict.fromkeys(errors))[:MAX_EXTRACTED_ERRORS]


@dataclass
class TestBaseline:
    """Failures present before any candidate was applied."""
    __test__ = False
    failing_tests: set[str]
    errors: set[str]


class ShellTestExecutor:
    """
    TestExecutor that runs a shell test command.

    Call capture_baseline() on the unpatched tree so that results can
    distinguish failures a candidate introduced from ones it inherited.

    Usage:
        executor = ShellTestExecutor("pytest -q", cwd=project_root, timeout=120)
        executor.capture_baseline()
        result = executor()
    """

    def __init__(
        self,
        command: str,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        runner: Callable[..., CommandResult] = run_command,
    ):
        self.command = command
        self.cwd = Path(cwd) if cwd is not None else None
        self.timeout = timeout
        self.runner = runner
        self.baseline: Optional[TestBaseline] = None

    def capture_baseline(self) -> TestBaseline:
        result = self.runner(self.command, cwd=self.cwd, timeout=self.timeout)
        output = result.output + "\n" + result.error
        self.baseline = TestBaseline(
            failing_tests=set(failing_test_names(output)),
            errors=set(extract_errors(output)),
        )
        logger.info(
            "Test baseline: %d failing test(s), %d error(s)",
            len(self.baseline.failing_tests), len(self.baseline.errors),
        )
        return self.baseline

    def __call__(self) -> ValidationResult:
        start = time.monotonic()
        result = self.runner(self.command, cwd=self.cwd, timeout=self.timeout)
        duration = time.monotonic() - start

        if result.error == COMMAND_TIMED_OUT:
            return ValidationResult.failure("Test timeout", compiled=False, duration=duration)

        output = result.output + "\n" + result.error
        counts = parse_test_counts(output)
        failing = failing_test_names(output)
        errors = extract_errors(output)
        compiled = result.success or not any(_COMPILE_ERROR.search(e) for e in errors)

        if self.baseline is not None:
            new_failures = [e for e in errors if e not in self.baseline.errors]
            regressions = [t for t in failing if t not in self.baseline.failing_tests]
            fixed = sorted(self.baseline.errors.difference(errors))
        else:
            new_failures = [] if result.success else (errors or [f"Test command exited with {result.returncode}"])
            regressions = []
            fixed = []

        if counts.run == 0 and result.success:
            counts.run = counts.passed

        return ValidationResult(
            success=result.success,
            tests_run=counts.run,
            tests_passed=counts.passed,
            tests_failed=counts.failed,
            failing_tests=failing,
            new_failures=new_failures,
            regressions=regressions,
            fixed_errors=fixed,
            compiled=compiled,
            duration=duration,
        )


class LocalFileSystem:
    """
    FileReader/FileWriter pair over a project directory.

    Relative paths resolve against ``root``. Newlines are preserved as-is
    so that a restore writes back byte-identical content.
    """

    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root / candidate

    def read(self, path: str) -> str:
        with open(self.resolve(path), "r", encoding="utf-8", newline="") as f:
            return f.read()

    def write(self, path: str, text: str) -> None:
        with open(self.resolve(path), "w", encoding="utf-8", newline="") as f:
            f.write(text)
