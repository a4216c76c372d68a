"""
Shared fixtures for the test suites: scripted collaborators and the
plain-class test runner used by each module's run_tests().
"""

import sys
import time
import traceback
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from apr_engine.models import (
    Fault,
    FaultSeverity,
    FaultType,
    Patch,
    PatchChange,
    SourceLocation,
    ValidationResult,
)

BUGGY_PY = "def f(obj):\n    return obj.value\n"


class MemoryFileSystem:
    """FileReader/FileWriter pair over a dict. Missing files raise KeyError."""

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.writes = []

    def read(self, path):
        return self.files[path]

    def write(self, path, text):
        self.writes.append(path)
        self.files[path] = text


def passing(tests=1):
    return ValidationResult(success=True, tests_run=tests, tests_passed=tests)


def failing(*errors):
    result = ValidationResult.failure(*(errors or ("AssertionError: boom",)))
    result.tests_run = 1
    result.tests_failed = 1
    return result


class ScriptedTestExecutor:
    """Returns the scripted results in order, repeating the last one."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def __call__(self):
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        return result


class ContentTestExecutor:
    """Passes when ``expected`` appears in the current content of ``path``."""

    def __init__(self, fs, path, expected):
        self.fs = fs
        self.path = path
        self.expected = expected
        self.calls = 0
        self.seen = []

    def __call__(self):
        self.calls += 1
        content = self.fs.read(self.path)
        self.seen.append(content)
        if self.expected in content:
            return passing()
        return failing()


class SlowTestExecutor:
    def __init__(self, seconds):
        self.seconds = seconds

    def __call__(self):
        time.sleep(self.seconds)
        return passing()


class ScriptedClient:
    """
    GenerationClient returning scripted replies in order.

    An Exception instance in the script is raised instead of returned. Once
    the script runs out every call returns an empty reply.
    """

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def __call__(self, prompt, history, temperature=None):
        self.calls.append({"prompt": prompt, "history": list(history), "temperature": temperature})
        if not self.replies:
            return ""
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def fix_reply(fixed, file="src/a.py", start=2, end=2, explanation="Model fix"):
    """A structured <fix> reply replacing lines start..end with ``fixed``."""
    return (
        "Here is the fix.\n"
        "<fix>\n"
        f"<file>{file}</file>\n"
        f"<line_start>{start}</line_start>\n"
        f"<line_end>{end}</line_end>\n"
        "<fixed>\n"
        f"{fixed}\n"
        "</fixed>\n"
        f"<explanation>{explanation}</explanation>\n"
        "</fix>\n"
    )


def make_fault(
    message="AttributeError: 'NoneType' object has no attribute 'value'",
    file="src/a.py",
    line=2,
    type=FaultType.RUNTIME_ERROR,
    severity=FaultSeverity.HIGH,
):
    return Fault(
        type=type,
        severity=severity,
        message=message,
        location=SourceLocation(file=file, start_line=line),
    )


def make_patch(fault, new_text, strategy="scripted", line=None, generated_by="template"):
    line = line or fault.location.start_line
    return Patch(
        fault=fault,
        changes=[PatchChange(
            file=fault.location.file,
            start_line=line,
            end_line=line,
            original_text="",
            new_text=new_text,
        )],
        strategy=strategy,
        generated_by=generated_by,
        confidence=0.5,
    )


def run_test_classes(test_classes):
    """Run every test_* method of the given classes and report results."""
    total_tests = 0
    passed_tests = 0
    failed_tests = []

    for test_class in test_classes:
        print(f"\n{'='*60}")
        print(f"Running {test_class.__name__}")
        print('='*60)

        instance = test_class()
        test_methods = [m for m in dir(instance) if m.startswith('test_')]

        for method_name in test_methods:
            total_tests += 1
            method = getattr(instance, method_name)

            try:
                method()
                print(f"  ✓ {method_name}")
                passed_tests += 1
            except AssertionError as e:
                print(f"  ✗ {method_name}")
                print(f"    AssertionError: {e}")
                failed_tests.append((test_class.__name__, method_name, str(e)))
            except Exception as e:
                print(f"  ✗ {method_name}")
                print(f"    {type(e).__name__}: {e}")
                traceback.print_exc()
                failed_tests.append((test_class.__name__, method_name, str(e)))

    print(f"\n{'='*60}")
    print(f"RESULTS: {passed_tests}/{total_tests} tests passed")
    print('='*60)

    if failed_tests:
        print("\nFailed tests:")
        for class_name, method_name, error in failed_tests:
            print(f"  - {class_name}.{method_name}: {error}")
        return 1
    print("\nAll tests passed!")
    return 0
