#!/usr/bin/env python3
"""
Tests for the validation state machine.

Run with: python -m pytest tests/test_validation_loop.py -v
Or directly: python tests/test_validation_loop.py
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from apr_engine import errors, events
from apr_engine.config import RepairConfig
from apr_engine.events import RepairEvents
from apr_engine.learning import LearningStore
from apr_engine.models import RepairState, ValidationResult
from apr_engine.repair.candidates import CandidateGenerator
from apr_engine.strategies.registry import StrategyRegistry
from apr_engine.validation.loop import ValidationLoop
from apr_engine.validation.validator import CandidateValidator
from tests.helpers import (
    BUGGY_PY,
    ContentTestExecutor,
    MemoryFileSystem,
    ScriptedClient,
    fix_reply,
    make_fault,
    make_patch,
    run_test_classes,
)


def build_loop(expected, client=None, learning=None, event_bus=None, executor_cls=ContentTestExecutor, **config):
    """Loop over an in-memory src/a.py whose tests pass once ``expected`` is in it."""
    config = RepairConfig(**config)
    fs = MemoryFileSystem({"src/a.py": BUGGY_PY})
    executor = executor_cls(fs, "src/a.py", expected)
    generator = CandidateGenerator(StrategyRegistry(), client, fs.read, config)
    validator = CandidateValidator(config, executor, fs.read, fs.write, event_bus)
    loop = ValidationLoop(config, generator, validator, learning, event_bus)
    return loop, fs, executor


class NewErrorsExecutor(ContentTestExecutor):
    """Exit status is clean but the run reports an error the baseline did not have."""

    def __call__(self):
        self.calls += 1
        if self.expected in self.fs.read(self.path):
            return ValidationResult(success=True, tests_run=1, tests_passed=1)
        return ValidationResult(success=True, tests_run=1, tests_passed=1, new_failures=["NameError: x"])


class CrashOnceExecutor(ContentTestExecutor):
    """Raises on the first run, then behaves like ContentTestExecutor."""

    def __call__(self):
        if self.calls == 0:
            self.calls += 1
            raise RuntimeError("runner crashed")
        return super().__call__()


class TestValidationLoop:

    def test_first_accepted_candidate_wins(self):
        loop, fs, executor = build_loop("fix2", max_iterations=3)
        fault = make_fault()
        pool = [make_patch(fault, f"    return fix{i}") for i in range(5)]

        result = loop.run(fault, pool, BUGGY_PY)

        assert result.success
        assert result.applied_patch is pool[2]
        assert result.iterations == 1
        assert result.candidates_tested == 3
        assert result.state == RepairState.SUCCESS
        assert executor.calls == 3
        assert fs.files["src/a.py"] == "def f(obj):\n    return fix2\n"
        assert not pool[3].validated and not pool[4].validated

    def test_failed_candidates_leave_file_untouched(self):
        loop, fs, executor = build_loop("never")
        fault = make_fault()
        pool = [make_patch(fault, f"    return {i}") for i in range(3)]

        result = loop.run(fault, pool, BUGGY_PY)

        assert not result.success
        assert result.reason == errors.ITERATIONS_EXHAUSTED
        assert result.state == RepairState.EXHAUSTED
        assert fs.files["src/a.py"] == BUGGY_PY
        # Every test run saw exactly one candidate on top of the original file
        for content, patch in zip(executor.seen, pool):
            assert content == BUGGY_PY.replace("    return obj.value", patch.text)

    def test_stops_when_nothing_is_left(self):
        loop, _, _ = build_loop("never", max_iterations=3)
        fault = make_fault()
        result = loop.run(fault, [make_patch(fault, "    return 0")], BUGGY_PY)
        assert result.iterations == 1
        assert result.candidates_tested == 1

    def test_no_candidates(self):
        loop, _, _ = build_loop("never")
        result = loop.run(make_fault(), [], BUGGY_PY)
        assert not result.success
        assert result.reason == errors.NO_CANDIDATES
        assert result.iterations == 0

    def test_template_fallthrough(self):
        """The second strategy's patch passes after the first one's fails."""
        loop, fs, _ = build_loop('getattr(obj, "value", None)', use_llm=False)
        fault = make_fault()
        candidates = loop.generator.generate(fault, BUGGY_PY)

        result = loop.run(fault, candidates, BUGGY_PY)

        assert result.success
        assert result.applied_patch.strategy == "api_update"
        assert result.iterations == 1
        assert result.candidates_tested == 2
        stats = loop.registry.statistics()
        assert (stats["null_check"]["attempts"], stats["null_check"]["successes"]) == (1, 0)
        assert (stats["api_update"]["attempts"], stats["api_update"]["successes"]) == (1, 1)

    def test_refinement_round(self):
        client = ScriptedClient([
            fix_reply("    return 0"),
            fix_reply("    return obj.value if obj else None"),
        ])
        loop, fs, _ = build_loop("if obj else None", client=client, max_iterations=2, max_candidates=2)
        fault = make_fault()
        candidates = loop.generator.generate(fault, BUGGY_PY)
        assert [c.generated_by for c in candidates] == ["template", "llm"]

        result = loop.run(fault, candidates, BUGGY_PY)

        assert result.success
        assert result.iterations == 2
        assert result.applied_patch.strategy == "llm_refined"
        assert result.candidates_generated == 3
        assert result.candidates_tested == 3
        assert "if obj else None" in fs.files["src/a.py"]

    def test_refines_candidates_rejected_for_new_errors(self):
        client = ScriptedClient([fix_reply("    return obj.value if obj else None")])
        loop, fs, _ = build_loop(
            "if obj else None", client=client, executor_cls=NewErrorsExecutor, max_iterations=2,
        )
        fault = make_fault()

        result = loop.run(fault, [make_patch(fault, "    return obj.val")], BUGGY_PY)

        assert len(client.calls) == 1
        assert "New errors: NameError: x" in client.calls[0]["prompt"]
        assert result.success
        assert result.iterations == 2
        assert result.applied_patch.strategy == "llm_refined"
        assert "if obj else None" in fs.files["src/a.py"]

    def test_executor_crash_moves_on_to_next_candidate(self):
        loop, fs, executor = build_loop("fix1", executor_cls=CrashOnceExecutor)
        fault = make_fault()
        pool = [make_patch(fault, "    return fix0"), make_patch(fault, "    return fix1")]

        result = loop.run(fault, pool, BUGGY_PY)

        assert result.success
        assert result.applied_patch is pool[1]
        assert result.candidates_tested == 2
        assert pool[0].validated
        assert pool[0].test_results.new_failures == ["runner crashed"]
        assert fs.files["src/a.py"] == "def f(obj):\n    return fix1\n"

    def test_model_patches_do_not_touch_template_stats(self):
        loop, _, _ = build_loop("never")
        fault = make_fault()
        loop.run(fault, [make_patch(fault, "    return 0", strategy="llm_generated", generated_by="llm")], BUGGY_PY)
        assert loop.registry.statistics()["null_check"]["attempts"] == 0
        assert "llm_generated" not in loop.registry.statistics()

    def test_learning_records(self):
        learning = LearningStore()
        loop, _, _ = build_loop("fix1", learning=learning)
        fault = make_fault()
        pool = [make_patch(fault, "    return fix0", strategy="first"),
                make_patch(fault, "    return fix1", strategy="second")]

        loop.run(fault, pool, BUGGY_PY)

        assert learning.lookup(fault.message) == "second"
        assert learning.failures[0][1] == "first"
        assert learning.records[0].failed_patches == [pool[0]]

    def test_learning_disabled(self):
        learning = LearningStore()
        loop, _, _ = build_loop("fix0", learning=learning, learning_enabled=False)
        fault = make_fault()
        loop.run(fault, [make_patch(fault, "    return fix0")], BUGGY_PY)
        assert len(learning) == 0

    def test_events(self):
        bus = RepairEvents()
        names = []
        for name in (events.CANDIDATE, events.VALIDATION, events.SUCCESS, events.FAILURE):
            bus.on(name, lambda name=name, **payload: names.append(name))
        loop, _, _ = build_loop("fix1", event_bus=bus)
        fault = make_fault()
        loop.run(fault, [make_patch(fault, "    return fix0"), make_patch(fault, "    return fix1")], BUGGY_PY)
        assert names == [
            events.CANDIDATE, events.VALIDATION,
            events.CANDIDATE, events.VALIDATION,
            events.SUCCESS,
        ]


def run_tests():
    return run_test_classes([TestValidationLoop])


if __name__ == "__main__":
    sys.exit(run_tests())
