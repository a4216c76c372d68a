#!/usr/bin/env python3
"""
Tests for the repair engine façade and its configuration.

Run with: python -m pytest tests/test_engine.py -v
Or directly: python tests/test_engine.py
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from apr_engine import errors, events
from apr_engine.config import FaultLocalizationConfig, RepairConfig
from apr_engine.engine import RepairEngine, create_generic_fault
from apr_engine.errors import RepairError
from apr_engine.localization.metrics import SuspiciousnessMetric
from apr_engine.models import FaultType
from apr_engine.validation.executors import CommandResult
from tests.helpers import (
    BUGGY_PY,
    ContentTestExecutor,
    MemoryFileSystem,
    make_fault,
    run_test_classes,
)

TRACEBACK = """\
Traceback (most recent call last):
  File "src/a.py", line 2, in f
    return obj.value
AttributeError: 'NoneType' object has no attribute 'value'
"""


def build_engine(expected=None, **config):
    """Engine over an in-memory src/a.py; tests pass once ``expected`` is in it."""
    fs = MemoryFileSystem({"src/a.py": BUGGY_PY})
    executor = ContentTestExecutor(fs, "src/a.py", expected) if expected else None
    config.setdefault("use_llm", False)
    config.setdefault("validate_with_tests", executor is not None)
    engine = RepairEngine(
        RepairConfig(**config),
        test_executor=executor,
        file_reader=fs.read,
        file_writer=fs.write,
    )
    return engine, fs


class FailingOnceGenerator:
    def __init__(self):
        self.calls = 0

    def generate(self, fault, code_context, **kwargs):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return []


class TestGenericFault:

    def test_file_and_line(self):
        fault = create_generic_fault("Something broke in src/app.py:42")
        assert fault.location.file == "src/app.py"
        assert fault.location.start_line == 42
        assert fault.type == FaultType.UNKNOWN
        assert fault.suspiciousness == 0.5

    def test_missing_line_defaults_to_first(self):
        assert create_generic_fault("crash in lib/util.ts").location.start_line == 1

    def test_no_file(self):
        assert create_generic_fault("Segmentation fault (core dumped)") is None

    def test_message_truncated(self):
        fault = create_generic_fault("in src/app.py " + "x" * 1000)
        assert len(fault.message) == 500


class TestRepairEngine:

    def test_generic_fault_used_when_nothing_parses(self):
        engine = RepairEngine(RepairConfig(use_llm=False))
        results = engine.repair("Something broke in src/app.py:42")
        assert len(results) == 1
        assert results[0].fault.metadata["generic"]
        assert results[0].reason == errors.NO_CANDIDATES

    def test_repair_applies_fix(self):
        engine, fs = build_engine()
        results = engine.repair(TRACEBACK)
        assert len(results) == 1 and results[0].success
        assert results[0].applied_patch.strategy == "null_check"
        assert "if obj is not None:" in fs.files["src/a.py"]

        report = engine.format_result(results[0])
        assert "Status: Fixed" in report
        assert "Strategy: null_check" in report
        assert "src/a.py:2-2" in report

    def test_failed_fault_does_not_stop_the_session(self):
        engine, _ = build_engine()
        engine.generator = FailingOnceGenerator()
        results = engine.repair("src/a.py:1:1: error: first\nsrc/a.py:2:1: error: second\n")
        assert len(results) == 2
        assert results[0].reason == "boom"
        assert not results[0].success
        assert results[1].reason == errors.NO_CANDIDATES

    def test_cancel_marks_remaining_faults(self):
        engine, _ = build_engine()
        engine.events.on(events.FAULT_START, lambda fault: engine.cancel())
        results = engine.repair("src/a.py:1:1: error: first\nsrc/a.py:2:1: error: second\n")
        assert results[1].reason == errors.CANCELLED
        assert engine.history()[0].cancelled
        assert engine.statistics().total_faults == 1

    def test_session_history(self):
        engine, _ = build_engine(max_sessions=2)
        for _ in range(3):
            engine.repair("")
        assert len(engine.history()) == 2
        assert engine.history()[0].config["max_sessions"] == 2
        engine.clear_history()
        assert engine.history() == []

    def test_statistics(self):
        engine, _ = build_engine()
        engine.repair(TRACEBACK)
        stats = engine.statistics()
        assert stats.total_faults == 1
        assert stats.repaired_faults == 1
        assert stats.success_rate == 1.0
        assert stats.strategy_successes == {"null_check": 1}
        assert stats.template_success_rates == {"null_check": 1.0}

    def test_session_events(self):
        engine, _ = build_engine()
        names = []
        for name in (events.SESSION_START, events.LOCALIZATION, events.FAULT_START, events.SESSION_END):
            engine.events.on(name, lambda name=name, **payload: names.append(name))
        engine.repair(TRACEBACK)
        assert names == [events.SESSION_START, events.LOCALIZATION, events.FAULT_START, events.SESSION_END]

    def test_learned_strategy_tried_first(self):
        engine, fs = build_engine('getattr(obj, "value", None)')
        first = make_fault(message="AttributeError: 'NoneType' object has no attribute 'value' (src/a.py:2:12)")
        result = engine.repair_fault(first)
        assert result.success
        assert result.applied_patch.strategy == "api_update"
        assert result.candidates_tested == 2

        fs.files["src/a.py"] = BUGGY_PY
        tried = []
        engine.events.on(events.CANDIDATE, lambda patch, iteration: tried.append(patch.strategy))
        second = make_fault(message="AttributeError: 'NoneType' object has no attribute 'value' (src/a.py:2:30)")
        result = engine.repair_fault(second)
        assert result.success
        assert tried[0] == "api_update"
        assert result.candidates_tested == 1

    def test_code_context(self):
        engine, _ = build_engine(code_context_lines=0)
        assert engine.code_context(make_fault()) == "    return obj.value"
        assert engine.code_context(make_fault(file="src/missing.py")) == ""

    def test_collect_errors(self):
        engine = RepairEngine()
        try:
            engine.collect_errors("make")
        except RepairError:
            pass
        else:
            assert False, "expected RepairError"

        engine.set_executors(command_executor=lambda command: CommandResult(False, "out", "err"))
        assert engine.collect_errors("make") == "out\nerr"

    def test_chat_repair_needs_client(self):
        engine, _ = build_engine()
        try:
            engine.chat_repair(make_fault())
        except RepairError as e:
            assert "client" in str(e)
            return
        assert False, "expected RepairError"

    def test_update_config_merges_localization(self):
        engine, _ = build_engine()
        engine.update_config(max_iterations=1, fault_localization={"metric": "tarantula"})
        assert engine.config.max_iterations == 1
        assert engine.config.fault_localization.metric == SuspiciousnessMetric.TARANTULA
        assert engine.config.fault_localization.threshold == 0.3
        assert engine.localizer.config.metric == SuspiciousnessMetric.TARANTULA
        assert engine.loop.config.max_iterations == 1


class TestRepairConfig:

    def test_from_dict(self):
        config = RepairConfig.from_dict({
            "max_candidates": 3,
            "fault_localization": {"metric": "DStar", "threshold": 0.5},
        })
        assert config.max_candidates == 3
        assert config.fault_localization.metric == SuspiciousnessMetric.DSTAR
        assert config.fault_localization.threshold == 0.5

    def test_unknown_option(self):
        for build in (
            lambda: RepairConfig.from_dict({"max_candidate": 3}),
            lambda: FaultLocalizationConfig.from_dict({"metrc": "ochiai"}),
            lambda: RepairConfig().update(use_template=False),
        ):
            try:
                build()
            except ValueError as e:
                assert "Unknown" in str(e)
                continue
            assert False, "expected ValueError"

    def test_bounds(self):
        for kwargs in ({"max_iterations": 0}, {"max_candidates": -1}):
            try:
                RepairConfig(**kwargs)
            except ValueError:
                continue
            assert False, f"expected ValueError for {kwargs}"

    def test_snapshot(self):
        snapshot = RepairConfig().snapshot()
        assert snapshot["fault_localization"]["metric"] == "ochiai"
        assert snapshot["max_iterations"] == 3


def run_tests():
    return run_test_classes([TestGenericFault, TestRepairEngine, TestRepairConfig])


if __name__ == "__main__":
    sys.exit(run_tests())
