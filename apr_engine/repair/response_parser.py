"""
Response parser for repair responses.

Extracts candidate patches from generation client responses: the structured
<fix> block requested by the repair prompt, with the first fenced code block
as a fallback.
"""

import re
from typing import Optional

from ..models import Fault, Patch, PatchChange

LLM_STRATEGY = "llm_generated"
STRUCTURED_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.5
DEFAULT_EXPLANATION = "LLM-generated fix"

_FIX_BLOCK = re.compile(r"<fix>(.*?)</fix>", re.DOTALL)
_CODE_START = re.compile(r"\b(?:function|class|const|let|var|import|export|if|for|while|return|def)\s+.+", re.DOTALL)


def _tag(content: str, name: str) -> Optional[str]:
    match = re.search(rf"<{name}>(.*?)</{name}>", content, re.DOTALL)
    return match.group(1) if match else None


def _block(text: Optional[str]) -> str:
    """Strip the newlines that wrap a tag's body, keeping indentation."""
    if text is None:
        return ""
    return text.strip("\n").rstrip()


def extract_code_block(response_text: str) -> Optional[str]:
    """
    Return the content of the first fenced code block, or None.

    Handles a response that is exactly one fence as well as fences with
    text before or after them.
    """
    text = response_text.strip()

    fence_pattern = r'^```(?:[\w+-]+)?[ \t]*\n((?:(?!```).)*?)\n?```\s*$'
    match = re.match(fence_pattern, text, re.DOTALL)
    if match:
        return _block(match.group(1))

    fence_pattern_loose = r'```(?:[\w+-]+)?[ \t]*\n(.*?)\n?```'
    match = re.search(fence_pattern_loose, text, re.DOTALL)
    if match:
        return _block(match.group(1))

    return None


def parse_fix_block(response_text: str, fault: Fault, strategy: str = LLM_STRATEGY) -> Optional[Patch]:
    """
    Parse a candidate patch from a repair response.

    Args:
        response_text: The raw response from the generation client
        fault: The fault being repaired, supplies defaults for missing tags
        strategy: Strategy tag for the resulting patch

    Returns:
        A Patch with confidence 0.7 for a <fix> block, 0.5 for a fenced
        code block fallback, or None when neither is present
    """
    location = fault.location
    fix_match = _FIX_BLOCK.search(response_text)

    if fix_match is None:
        code = extract_code_block(response_text)
        if code is None:
            return None
        change = PatchChange(
            file=location.file,
            start_line=location.start_line,
            end_line=location.end_line,
            original_text="",
            new_text=code,
        )
        return Patch(
            fault=fault,
            changes=[change],
            strategy=strategy,
            generated_by="llm",
            confidence=FALLBACK_CONFIDENCE,
            explanation=DEFAULT_EXPLANATION,
        )

    content = fix_match.group(1)
    fixed = _tag(content, "fixed")
    if fixed is None:
        return None

    file = _tag(content, "file")
    start = _tag(content, "line_start")
    end = _tag(content, "line_end")
    explanation = _tag(content, "explanation")

    start_line = int(start.strip()) if start and start.strip().isdigit() else location.start_line
    end_line = int(end.strip()) if end and end.strip().isdigit() else location.end_line
    change = PatchChange(
        file=file.strip() if file and file.strip() else location.file,
        start_line=start_line,
        end_line=max(end_line, start_line),
        original_text=_block(_tag(content, "original")),
        new_text=_block(fixed),
    )
    return Patch(
        fault=fault,
        changes=[change],
        strategy=strategy,
        generated_by="llm",
        confidence=STRUCTURED_CONFIDENCE,
        explanation=explanation.strip() if explanation and explanation.strip() else DEFAULT_EXPLANATION,
    )


def extract_chat_patch(response_text: str) -> Optional[str]:
    """
    Pull replacement code out of a conversational repair reply.

    The reply is asked to contain only code; a fenced block wins, otherwise
    everything from the first statement-looking keyword onwards is taken.
    """
    code = extract_code_block(response_text)
    if code is not None:
        return code
    match = _CODE_START.search(response_text)
    if match:
        return match.group(0).strip()
    return None
