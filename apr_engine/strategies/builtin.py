"""
Default strategy table.

Each generator receives the regex match that selected the strategy (which
may come from the fault message or from the code context) and a FixContext,
and returns fix text in the marker language of rewrite.py, or None when it
has nothing to offer for this line.
"""

import re
from typing import Optional

from ..languages import JS_LANGUAGES
from ..models import FaultType
from .registry import FixContext, Strategy
from .rewrite import FLIP, LINE, OPTIONAL_CHAIN, RHS

_RECEIVER = re.compile(r"\b([A-Za-z_$][\w$]*)\s*(?:\?)?\.\s*([A-Za-z_$][\w$]*)")
_SUBSCRIPT = re.compile(r"\b([A-Za-z_$][\w$.]*)\[([A-Za-z_$][\w$]*)\]")
_BLOCK_OPENER = re.compile(r"^\s*(?:async\s+)?(?:def|class|if|elif|else|for|while|try|except|finally|with)\b")
_PY_IMPORT = re.compile(r"^\s*(?:from\s+\S+\s+)?import\s+(?P<names>.+)$")
_JS_MODULE = re.compile(r"""(?P<quote>['"])(?P<module>[^'"./][^'"]*)(?P=quote)""")
_LOOSE_EQUALITY = re.compile(r"(?<![=!<>])(==|!=)(?!=)")
_STRICT_COMPARISON = re.compile(r"(<=|>=|(?<![<\-=])<(?![<=])|(?<![>\-=])>(?![>=]))")


def _group(match: Optional[re.Match], index: int) -> Optional[str]:
    """Group ``index`` of ``match`` when it exists and participated."""
    if match is None or match.re.groups < index:
        return None
    return match.group(index)


def _is_js(ctx: FixContext) -> bool:
    return ctx.language in JS_LANGUAGES


def _is_python(ctx: FixContext) -> bool:
    return ctx.language == "python"


def _receiver(match: Optional[re.Match], ctx: FixContext) -> Optional[str]:
    """
    Name of the object that turned out to be null.

    Prefers the receiver of the property named in the message, then the
    first member access on the faulty line, then the name in the message.
    """
    prop = _group(match, 1)
    accesses = _RECEIVER.findall(ctx.target_line)
    for receiver, attribute in accesses:
        if prop and attribute == prop:
            return receiver
    if accesses:
        return accesses[0][0]
    if prop and re.search(rf"\b{re.escape(prop)}\b", ctx.target_line):
        return prop
    return None


# null_check

def _null_guard(match, ctx):
    name = _receiver(match, ctx)
    if name is None:
        return None
    if _is_python(ctx):
        return f"if {name} is not None:\n    {{original}}"
    return f"if ({name} != null) {{\n  {{original}}\n}}"


def _optional_chain(match, ctx):
    return OPTIONAL_CHAIN


# type_coercion

def _type_assertion(match, ctx):
    target = _group(match, 2)
    if ctx.language != "typescript" or not target or not target.isidentifier():
        return None
    return f"{RHS} as {target}"


def _to_string(match, ctx):
    if _is_python(ctx):
        return f"str({RHS})"
    return f"String({RHS})"


def _to_number(match, ctx):
    if _is_python(ctx):
        return f"int({RHS})"
    return f"Number({RHS})"


def _to_float(match, ctx):
    if _is_python(ctx):
        return f"float({RHS})"
    return None


# boundary_check

def _index_guard(match, ctx):
    subscript = _SUBSCRIPT.search(ctx.target_line)
    if not subscript:
        return None
    sequence, index = subscript.groups()
    if _is_python(ctx):
        return f"if 0 <= {index} < len({sequence}):\n    {{original}}"
    return f"if ({index} >= 0 && {index} < {sequence}.length) {{\n  {{original}}\n}}"


def _exclusive_bound(match, ctx):
    """Off-by-one: an inclusive upper bound becomes exclusive and vice versa."""
    found = _STRICT_COMPARISON.search(ctx.target_line)
    if not found:
        return None
    swapped = {"<=": "<", "<": "<=", ">=": ">", ">": ">="}[found.group(1)]
    line = ctx.target_line
    return LINE + (line[:found.start()] + swapped + line[found.end():]).strip()


def _non_empty_guard(match, ctx):
    subscript = _SUBSCRIPT.search(ctx.target_line)
    if not subscript:
        return None
    sequence = subscript.group(1)
    if _is_python(ctx):
        return f"if {sequence}:\n    {{original}}"
    return f"if ({sequence}.length > 0) {{\n  {{original}}\n}}"


# exception_handling

def _try_wrap(match, ctx):
    if _is_python(ctx):
        return "try:\n    {original}\nexcept Exception as error:\n    print(error)"
    return "try {\n  {original}\n} catch (error) {\n  console.error(error);\n}"


def _promise_catch(match, ctx):
    line = ctx.target_line.rstrip()
    if not _is_js(ctx) or ".then(" not in line or ".catch(" in line:
        return None
    terminator = ";" if line.endswith(";") else ""
    body = line.strip().rstrip(";")
    return LINE + f"{body}.catch((error) => console.error(error)){terminator}"


# import_fix

def _relative_module(match, ctx):
    if not _is_js(ctx):
        return None
    found = _JS_MODULE.search(ctx.target_line)
    if not found or ("import" not in ctx.target_line and "require" not in ctx.target_line):
        return None
    line = ctx.target_line
    replaced = line[:found.start("module")] + "./" + line[found.start("module"):]
    return LINE + replaced.strip()


def _optional_import(match, ctx):
    if not _is_python(ctx):
        return None
    found = _PY_IMPORT.match(ctx.target_line)
    if not found:
        return None
    names = [
        part.split(" as ")[-1].strip().split(".")[0]
        for part in found.group("names").strip("() ").split(",")
        if part.strip()
    ]
    fallback = "\n    ".join(f"{name} = None" for name in names)
    return "try:\n    {original}\nexcept ImportError:\n    " + fallback


# syntax_fix

def _missing_colon(match, ctx):
    line = ctx.target_line.rstrip()
    if not _is_python(ctx) or not _BLOCK_OPENER.match(line) or line.endswith(":"):
        return None
    return ":"


def _missing_semicolon(match, ctx):
    line = ctx.target_line.rstrip()
    if not _is_js(ctx) or line.endswith((";", "{", "}", ",", "(", "[")):
        return None
    return ";"


def _closer(opener: str, closer: str):
    def close(match, ctx):
        line = ctx.target_line
        missing = line.count(opener) - line.count(closer)
        if missing <= 0:
            return None
        return closer * missing
    close.__name__ = f"_close_{closer}"
    return close


# logic_fix

def _strict_equality(match, ctx):
    if not _is_js(ctx) or not _LOOSE_EQUALITY.search(ctx.target_line):
        return None
    strict = _LOOSE_EQUALITY.sub(lambda m: m.group(1) + "=", ctx.target_line)
    return LINE + strict.strip()


def _flip_comparison(match, ctx):
    return FLIP


# api_update

def _optional_call(match, ctx):
    name = _group(match, 1)
    if not _is_js(ctx) or not name:
        return None
    callee = name.split(".")[-1]
    found = re.search(rf"\b{re.escape(callee)}\(", ctx.target_line)
    if not found:
        return None
    line = ctx.target_line
    rewritten = line[:found.end() - 1] + "?.(" + line[found.end():]
    return LINE + rewritten.strip()


def builtin_strategies() -> list[Strategy]:
    """Fresh copies of the default strategies, in registry order."""
    return [
        Strategy(
            id="null_check",
            description="Add null/undefined checks",
            patterns=[
                re.compile(r"Cannot read propert(?:y|ies) ['\"]?(\w+)['\"]? of (undefined|null)", re.I),
                re.compile(r"Cannot read properties of (?:undefined|null) \(reading '(\w+)'\)", re.I),
                re.compile(r"'NoneType' object has no attribute '(\w+)'"),
                re.compile(r"(\w+) is (undefined|null|None)\b", re.I),
                re.compile(r"TypeError:.*(?:undefined|null|NoneType)", re.I),
            ],
            fix_generators=[_null_guard, _optional_chain],
            fault_types=(FaultType.RUNTIME_ERROR,),
            priority=9,
        ),
        Strategy(
            id="type_coercion",
            description="Fix type conversion issues",
            patterns=[
                re.compile(r"Type '(\w+)' is not assignable to type '(\w+)'", re.I),
                re.compile(r"Argument of type '(.+?)' is not assignable", re.I),
                re.compile(r"cannot convert (\w+) to (\w+)", re.I),
                re.compile(r"unsupported operand type\(s\) for .+: '(\w+)' and '(\w+)'"),
                re.compile(r"can only concatenate (\w+) \(not \"(\w+)\"\)"),
                re.compile(r"must be (\w+), not (\w+)"),
            ],
            fix_generators=[_type_assertion, _to_string, _to_number, _to_float],
            fault_types=(FaultType.TYPE_ERROR,),
            priority=7,
        ),
        Strategy(
            id="boundary_check",
            description="Add boundary checks for arrays",
            patterns=[
                re.compile(r"Index out of (bounds|range)", re.I),
                re.compile(r"Array index .* out of bounds", re.I),
                re.compile(r"(?:list|string|tuple) index out of range"),
                re.compile(r"RangeError"),
            ],
            fix_generators=[_index_guard, _exclusive_bound, _non_empty_guard],
            priority=7,
        ),
        Strategy(
            id="exception_handling",
            description="Add error handling",
            patterns=[
                re.compile(r"Unhandled (?:promise )?rejection", re.I),
                re.compile(r"Error:.*not caught", re.I),
                re.compile(r"uncaught exception", re.I),
            ],
            fix_generators=[_try_wrap, _promise_catch],
            priority=6,
        ),
        Strategy(
            id="import_fix",
            description="Fix import/export issues",
            patterns=[
                re.compile(r"Cannot find module ['\"](.+?)['\"]", re.I),
                re.compile(r"Module not found", re.I),
                re.compile(r"is not exported from", re.I),
                re.compile(r"has no exported member", re.I),
                re.compile(r"No module named ['\"]?([\w.]+)['\"]?"),
                re.compile(r"cannot import name ['\"]?(\w+)['\"]?"),
            ],
            fix_generators=[_relative_module, _optional_import],
            priority=6,
        ),
        Strategy(
            id="syntax_fix",
            description="Fix syntax errors",
            patterns=[
                re.compile(r"SyntaxError"),
                re.compile(r"Unexpected token", re.I),
                re.compile(r"Missing (?:semicolon|bracket|parenthesis)", re.I),
                re.compile(r"Unterminated string", re.I),
                re.compile(r"invalid syntax|expected ':'|was never closed"),
            ],
            fix_generators=[
                _missing_colon,
                _missing_semicolon,
                _closer("(", ")"),
                _closer("[", "]"),
                _closer("{", "}"),
            ],
            fault_types=(FaultType.SYNTAX_ERROR,),
            priority=8,
        ),
        Strategy(
            id="logic_fix",
            description="Fix logic errors",
            patterns=[
                re.compile(r"Expected .* but (?:got|received)", re.I),
                re.compile(r"assertion failed", re.I),
                re.compile(r"AssertionError"),
                re.compile(r"test failed", re.I),
            ],
            fix_generators=[_strict_equality, _flip_comparison, _exclusive_bound],
            fault_types=(FaultType.TEST_FAILURE,),
            priority=5,
        ),
        Strategy(
            id="api_update",
            description="Update deprecated API calls",
            patterns=[
                re.compile(r"([\w$.]+) is not a function", re.I),
                re.compile(r"deprecated", re.I),
                re.compile(r"method .* does not exist", re.I),
                re.compile(r"object has no attribute '(\w+)'"),
            ],
            fix_generators=[_optional_call, _optional_chain],
            priority=4,
        ),
        Strategy(
            id="refactor",
            description="General refactoring",
            patterns=[re.compile(r".*")],
            fix_generators=[_flip_comparison, _optional_chain],
            priority=1,
            catch_all=True,
        ),
    ]
