#!/usr/bin/env python3
"""
Tests for the conversational repair driver.

Run with: python -m pytest tests/test_conversational.py -v
Or directly: python tests/test_conversational.py
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

from apr_engine import errors
from apr_engine.config import RepairConfig
from apr_engine.validation.conversational import (
    ChatRepairContext,
    ConversationalRepairer,
    check_plausibility,
    locate_snippet,
)
from tests.helpers import (
    BUGGY_PY,
    ContentTestExecutor,
    MemoryFileSystem,
    ScriptedClient,
    run_test_classes,
)

ERROR = "AttributeError: 'NoneType' object has no attribute 'value'"


def fenced(code):
    return f"```python\n{code}\n```"


def repairer(client, executor=None, fs=None, **config):
    fs = fs or MemoryFileSystem({"src/a.py": BUGGY_PY})
    if executor is None:
        executor = ContentTestExecutor(fs, "src/a.py", "if obj else None")
    return ConversationalRepairer(RepairConfig(**config), client, executor, fs.read, fs.write), fs


class TestPlausibility:

    def test_empty(self):
        assert check_plausibility("") == "Empty patch"
        assert check_plausibility("   \n") == "Empty patch"
        assert check_plausibility(None) == "Empty patch"

    def test_unclosed(self):
        assert check_plausibility("foo(") == "Unclosed parenthesis"
        assert check_plausibility("if (x) {") == "Unclosed brace"
        assert check_plausibility("items = [") == "Unclosed bracket"

    def test_identical(self):
        assert check_plausibility("  x = 1\n", "x = 1") == "Patch identical to original code"

    def test_placeholders(self):
        assert check_plausibility("x = 1  # TODO") == "Patch contains placeholders"
        assert check_plausibility("def f():\n    ...") == "Patch contains placeholders"

    def test_plausible(self):
        assert check_plausibility("x = 2", "x = 1") is None


class TestLocateSnippet:

    def test_found(self):
        assert locate_snippet(BUGGY_PY, "return obj.value") == 2
        assert locate_snippet(BUGGY_PY, "def f(obj):\n    return obj.value\n") == 1

    def test_not_found(self):
        assert locate_snippet(BUGGY_PY, "print()") is None
        assert locate_snippet(BUGGY_PY, "\n") is None


class TestConversationalRepairer:

    def test_identical_patch_never_reaches_tests(self):
        client = ScriptedClient([fenced("    return obj.value")] * 5)
        executor = MagicMock()
        chat, fs = repairer(client, executor, max_chat_turns=5, max_implausible_turns=3)

        result = chat.repair(ChatRepairContext(file="src/a.py", error_message=ERROR, start_line=2))

        executor.assert_not_called()
        assert not result.success
        assert result.attempts == []
        assert len(client.calls) == 3
        assert result.lessons[0] == "Patch rejected: Patch identical to original code"
        assert result.reason == "No plausible patch in 3 consecutive turns"
        assert fs.files["src/a.py"] == BUGGY_PY

    def test_feedback_then_success(self):
        client = ScriptedClient([
            fenced("    return 0"),
            fenced("    return obj.value if obj else None"),
        ])
        chat, fs = repairer(client)

        result = chat.repair(ChatRepairContext(file="src/a.py", error_message=ERROR, start_line=2))

        assert result.success
        assert len(result.attempts) == 2
        assert not result.attempts[0].result.accepted
        assert result.final_patch == "    return obj.value if obj else None"
        assert fs.files["src/a.py"] == "def f(obj):\n    return obj.value if obj else None\n"

        assert result.conversation[0].role == "system"
        assert "return obj.value" in result.conversation[0].content
        assert result.conversation[-1].role == "assistant"
        assert any(t.content.startswith("## Test Results") for t in result.conversation if t.role == "user")
        # The second request carries the whole transcript so far
        assert len(client.calls[1]["history"]) == 4
        assert client.calls[1]["prompt"].startswith("The previous fix did not work.")

    def test_snippet_locates_range(self):
        client = ScriptedClient([fenced("    return obj.value if obj else None")])
        chat, fs = repairer(client)
        context = ChatRepairContext(file="src/a.py", error_message=ERROR, code_snippet="    return obj.value")

        result = chat.repair(context)

        assert context.start_line == 2 and context.end_line == 2
        assert result.success

    def test_unlocatable_snippet_stops_before_any_request(self):
        client = ScriptedClient([fenced("    return obj and obj.value")])
        source = "import os\n" + BUGGY_PY
        fs = MemoryFileSystem({"src/a.py": source})
        executor = ContentTestExecutor(fs, "src/a.py", "")
        chat, _ = repairer(client, executor, fs)
        context = ChatRepairContext(file="src/a.py", error_message=ERROR, code_snippet="    return obj.val")

        result = chat.repair(context)

        assert not result.success
        assert result.reason == errors.NO_CHAT_LOCATION
        assert client.calls == []
        assert executor.calls == 0
        assert fs.files["src/a.py"] == source

    def test_exhausted_turns_roll_back(self):
        client = ScriptedClient([fenced("    return 0"), fenced("    return 1")])
        chat, fs = repairer(client, max_chat_turns=2)

        result = chat.repair(ChatRepairContext(file="src/a.py", error_message=ERROR, start_line=2))

        assert not result.success
        assert result.reason == "No passing patch after 2 turns"
        assert len(result.attempts) == 2
        assert fs.files["src/a.py"] == BUGGY_PY

    def test_reply_without_code(self):
        client = ScriptedClient(["I cannot help with that", fenced("    return obj.value if obj else None")])
        chat, _ = repairer(client)

        result = chat.repair(ChatRepairContext(file="src/a.py", error_message=ERROR, start_line=2))

        assert result.success
        assert result.lessons[0] == "Could not extract valid patch from response"
        assert "No code block" in client.calls[1]["prompt"]

    def test_generation_failure(self):
        client = ScriptedClient([RuntimeError("overloaded"), fenced("    return obj.value if obj else None")])
        chat, _ = repairer(client)

        result = chat.repair(ChatRepairContext(file="src/a.py", error_message=ERROR, start_line=2))

        assert result.success
        assert result.lessons[0] == "Generation failed"


def run_tests():
    return run_test_classes([TestPlausibility, TestLocateSnippet, TestConversationalRepairer])


if __name__ == "__main__":
    sys.exit(run_tests())
