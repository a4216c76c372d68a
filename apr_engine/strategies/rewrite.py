"""
Turn a strategy's fix text into a replacement for the faulty line.

Fix text is interpreted by the markers it contains:

    {original}  the faulty statement is substituted in (wrap / insert);
                every resulting line keeps the statement's indentation
    {rhs}       the right-hand side of an assignment or return is
                substituted in, the rest of the line is kept
    {flip}      the first comparison operator of the line is inverted
    {line}...   the statement is replaced by the text after the marker,
                keeping its indentation
    ?.          member access becomes null-safe (optional chaining in
                JavaScript/TypeScript, getattr() in Python)
    otherwise   the text is appended to the line

A rewrite that does not apply, or leaves the line unchanged, yields None.
"""

import re
from typing import Optional

ORIGINAL = "{original}"
RHS = "{rhs}"
FLIP = "{flip}"
LINE = "{line}"
OPTIONAL_CHAIN = "?."

_INDENT = re.compile(r"^\s*")
_ASSIGNMENT = re.compile(
    r"^(?P<head>\s*(?:return\s+|(?:const|let|var)\s+[\w$]+(?:\s*:\s*[\w<>\[\]|. ]+)?\s*=\s*|[\w$.\[\]]+\s*(?::\s*[\w\[\]|. ]+)?\s*=(?!=)\s*))"
    r"(?P<rhs>.+?)(?P<tail>;?\s*)$"
)
_MEMBER = re.compile(r"\b([A-Za-z_$][\w$]*)\.([A-Za-z_$][\w$]*)")
_COMPARISONS = [
    ("===", "!=="), ("!==", "==="), ("==", "!="), ("!=", "=="),
    ("<=", ">"), (">=", "<"), ("<", ">="), (">", "<="),
]
_COMPARISON = re.compile(r"===|!==|==|!=|<=|>=|(?<![<\-=])<(?![<=])|(?<![>\-=])>(?![>=])")
_FLIPPED = dict(_COMPARISONS)
_TIGHT = (";", ")", "}", "]", ":", ",")


def indentation(line: str) -> str:
    return _INDENT.match(line).group(0)


def _wrap(line: str, fix: str) -> str:
    indent = indentation(line)
    body = fix.replace(ORIGINAL, line.strip())
    return "\n".join(indent + part if part else part for part in body.split("\n"))


def _substitute_rhs(line: str, fix: str) -> Optional[str]:
    match = _ASSIGNMENT.match(line)
    if not match:
        return None
    rhs = match.group("rhs").strip()
    return match.group("head") + fix.replace(RHS, rhs) + match.group("tail")


def _flip(line: str) -> Optional[str]:
    match = _COMPARISON.search(line)
    if not match:
        return None
    operator = match.group(0)
    return line[:match.start()] + _FLIPPED[operator] + line[match.end():]


def _null_safe(line: str, language: str) -> Optional[str]:
    if language == "python":
        match = _MEMBER.search(line)
        if not match:
            return None
        replacement = f'getattr({match.group(1)}, "{match.group(2)}", None)'
        return line[:match.start()] + replacement + line[match.end():]
    if "?." in line:
        return None
    return _MEMBER.sub(r"\1?.\2", line)


def _append(line: str, fix: str) -> str:
    stripped = line.rstrip()
    if fix.startswith(_TIGHT):
        return stripped + fix
    return f"{stripped} {fix}"


def apply_fix(line: str, fix: str, language: str = "text") -> Optional[str]:
    """
    Rewrite ``line`` according to ``fix``.

    Args:
        line: The faulty source line, without its newline
        fix: Fix text produced by a strategy's generator
        language: Language of the file, from detect_language()

    Returns:
        The replacement text (possibly several lines), or None when the
        fix does not apply to this line
    """
    if not fix or not line.strip():
        return None

    if fix.startswith(LINE):
        result = indentation(line) + fix[len(LINE):]
    elif ORIGINAL in fix:
        result = _wrap(line, fix)
    elif RHS in fix:
        result = _substitute_rhs(line, fix)
    elif fix == FLIP:
        result = _flip(line)
    elif fix == OPTIONAL_CHAIN:
        result = _null_safe(line, language)
    else:
        result = _append(line, fix)

    if result is None or result == line:
        return None
    return result
