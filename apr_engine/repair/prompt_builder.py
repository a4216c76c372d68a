"""
Prompt builder for repair requests.

Builds prompts for the generation client: the structured single-shot repair
prompt, the refinement prompt summarizing failed candidates, and the
messages of the conversational repair dialogue.
"""

from dataclasses import dataclass
from typing import Optional

from ..languages import detect_language
from ..models import Fault, Patch, ValidationResult

REPAIR_SYSTEM_PROMPT = """\
You are an expert software engineer specializing in debugging and repairing code.
Your task is to analyze a bug and generate a precise, minimal fix.

When generating a fix:
1. Analyze the error message and stack trace carefully
2. Understand the code context around the bug
3. Generate the minimal change needed to fix the issue
4. Explain why your fix works
5. Consider edge cases and potential side effects

Output format:
<fix>
<file>path/to/file</file>
<line_start>10</line_start>
<line_end>15</line_end>
<original>
original code here
</original>
<fixed>
fixed code here
</fixed>
<explanation>Why this fix works</explanation>
</fix>

The <fixed> block replaces lines line_start..line_end of the file exactly,
so keep the original indentation.
"""

CHAT_INSTRUCTIONS = """\
## Instructions
1. Analyze the error and identify the root cause
2. Generate a minimal fix that addresses the bug
3. Return ONLY the corrected code block, no explanations
4. Preserve the original code structure as much as possible
"""

INITIAL_CHAT_MESSAGE = "Please fix this bug."


@dataclass
class ChatPromptContext:
    """
    Everything the conversational repairer tells the model up front.

    Attributes:
        file: File containing the bug
        error_message: The diagnostic being repaired
        line: 1-based line of the bug, if known
        stack_trace: Optional stack trace text
        code_snippet: The buggy code the model should rewrite
        test_code: Source of the failing test, if available
    """
    file: str
    error_message: str
    line: Optional[int] = None
    stack_trace: Optional[str] = None
    code_snippet: Optional[str] = None
    test_code: Optional[str] = None


def _fenced(code: str, language: str = "") -> str:
    return f"```{language}\n{code}\n```"


def build_repair_prompt(fault: Fault, code_context: str, context_hint: Optional[str] = None) -> str:
    """Build the user prompt for a single repair request."""
    location = fault.location
    parts = [
        "Fix the following bug:",
        "",
        "**Error:**",
        fault.message,
        "",
        "**Location:**",
        f"File: {location.file}",
        f"Lines: {location.start_line}-{location.end_line}",
        "",
        "**Code Context:**",
        _fenced(code_context, detect_language(location.file)),
        "",
        "**Stack Trace (if available):**",
        fault.stack_trace or "N/A",
    ]

    if fault.related_locations:
        parts.append("")
        parts.append("**Related Locations:**")
        for related in fault.related_locations:
            parts.append(f"  {related}")

    parts.append("")
    parts.append("Please analyze the bug and provide a fix.")

    if context_hint:
        parts.append("")
        parts.append(f"Additional context: {context_hint}")

    return "\n".join(parts)


def _format_failed_attempt(number: int, patch: Patch) -> str:
    parts = [f"Attempt {number} ({patch.strategy}):", patch.text or "(empty)"]
    results = patch.test_results
    if results is None:
        parts.append("Result: Unknown")
        return "\n".join(parts)

    if results.failing_tests:
        parts.append(f"Failing tests: {', '.join(results.failing_tests)}")
    if results.new_failures:
        parts.append(f"New errors: {', '.join(results.new_failures)}")
    if not results.failing_tests and not results.new_failures:
        parts.append("Result: Unknown")
    return "\n".join(parts)


def build_refinement_prompt(fault: Fault, code_context: str, failed_patches: list[Patch]) -> str:
    """Build the prompt asking for a better fix after every candidate failed."""
    failed_info = "\n\n".join(
        _format_failed_attempt(i, patch) for i, patch in enumerate(failed_patches, 1)
    )
    return "\n".join([
        "The following fix attempts failed. Please analyze why and suggest a better fix.",
        "",
        f"**Original Error:** {fault.message}",
        "",
        "**Code Context:**",
        _fenced(code_context),
        "",
        "**Failed Attempts:**",
        failed_info,
        "",
        "Please provide an improved fix that addresses the issues with the previous attempts.",
    ])


def build_chat_system_prompt(context: ChatPromptContext) -> str:
    """Turn 0 of a conversational repair: location, error, code and test."""
    parts = [
        "You are a debugging assistant. Fix the following bug.",
        "",
        "## Bug Location",
        f"File: {context.file}",
    ]
    if context.line is not None:
        parts.append(f"Line: {context.line}")
    parts += ["", "## Error Message", context.error_message]

    if context.stack_trace:
        parts += ["", "## Stack Trace", context.stack_trace]
    if context.code_snippet:
        parts += ["", "## Buggy Code", _fenced(context.code_snippet, detect_language(context.file))]
    if context.test_code:
        parts += ["", "## Failing Test", _fenced(context.test_code)]

    parts += ["", CHAT_INSTRUCTIONS]
    return "\n".join(parts)


def build_follow_up_message(result: ValidationResult) -> str:
    """User turn opening the next attempt after a failed one."""
    parts = ["The previous fix did not work."]
    if result.new_failures:
        parts.append("")
        parts.append("New errors:")
        parts.extend(result.new_failures)
    if result.tests_failed > 0:
        parts.append("")
        parts.append(
            f"Tests: {result.tests_passed}/{result.tests_run} passed, {result.tests_failed} failed"
        )
    parts.append("")
    parts.append("Please try a different approach.")
    return "\n".join(parts)


def build_test_feedback_message(result: ValidationResult) -> str:
    """Structured test results appended to the transcript after a failed attempt."""
    parts = ["## Test Results"]
    if not result.compiled:
        parts.append("Compilation failed.")
    else:
        parts.append("Compiled successfully.")
        parts.append(f"Tests: {result.tests_passed}/{result.tests_run} passed")

    if result.new_failures:
        parts.append("")
        parts.append("Errors:")
        parts.extend(f"- {error}" for error in result.new_failures)
    if result.regressions:
        parts.append("")
        parts.append("Regressions:")
        parts.extend(f"- {regression}" for regression in result.regressions)

    parts.append("")
    parts.append("Please analyze these results and try a different fix.")
    return "\n".join(parts)


def build_rejection_message(reason: str) -> str:
    return f"The patch was rejected: {reason}. Please try again."
