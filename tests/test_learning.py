#!/usr/bin/env python3
"""
Tests for the learning store.

Run with: python -m pytest tests/test_learning.py -v
Or directly: python tests/test_learning.py
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from apr_engine.learning import LearningStore, error_hash, normalize_message
from tests.helpers import make_fault, make_patch, run_test_classes


def learn(store, message, strategy):
    fault = make_fault(message=message)
    return store.record_success(fault, make_patch(fault, "x", strategy=strategy))


class TestNormalization:

    def test_positions_paths_and_case(self):
        normalized = normalize_message("Error in 'src/a.ts' at line:10:5")
        assert normalized == "error in  at line"

    def test_same_signature_for_different_positions(self):
        first = "TypeError: x is undefined at handler (src/a.ts:10:5)"
        second = "TypeError: x is undefined at handler (src/a.ts:42:7)"
        assert error_hash(first) == error_hash(second)
        assert len(error_hash(first)) == 16

    def test_different_errors_differ(self):
        assert error_hash("TypeError: x is undefined") != error_hash("SyntaxError: Unexpected token")


class TestLearningStore:

    def test_exact_lookup(self):
        store = LearningStore()
        learn(store, "TypeError: x is undefined at f (src/a.ts:1:2)", "null_check")
        assert store.lookup("TypeError: X is undefined at f (src/a.ts:9:9)") == "null_check"

    def test_partial_lookup(self):
        store = LearningStore()
        learn(store, "TypeError: Cannot read properties of undefined (reading foo)", "null_check")
        assert store.lookup("TypeError: Cannot read properties of undefined (reading bar)") == "null_check"
        assert store.lookup("SyntaxError: Unexpected token }") is None

    def test_threshold(self):
        store = LearningStore(similarity_threshold=1.0)
        learn(store, "TypeError: Cannot read properties of undefined (reading foo)", "null_check")
        assert store.lookup("TypeError: Cannot read properties of undefined (reading bar)") is None

    def test_relearning_overwrites(self):
        store = LearningStore()
        learn(store, "boom", "a")
        learn(store, "boom", "b")
        assert store.lookup("boom") == "b"
        assert len(store) == 1

    def test_caps_keep_most_recent_half(self):
        store = LearningStore(history_cap=4)
        for i in range(5):
            learn(store, f"error number {i} {'x' * i}", f"s{i}")
        assert len(store.records) == 2
        assert len(store) == 2
        assert [r.successful_patch.strategy for r in store.records] == ["s3", "s4"]
        assert set(store.learned_patterns().values()) == {"s3", "s4"}

    def test_record_metadata(self):
        store = LearningStore()
        fault = make_fault()
        failed = make_patch(fault, "y", strategy="null_check")
        store.record_success(fault, make_patch(fault, "x", strategy="api_update"), [failed], "code")
        record = store.records[0]
        assert record.file_type == "py"
        assert record.code_context == "code"
        assert record.failed_patches == [failed]

    def test_statistics(self):
        store = LearningStore()
        fault = make_fault()
        learn(store, fault.message, "api_update")
        store.record_failure(fault, make_patch(fault, "y", strategy="null_check"))
        stats = store.statistics()
        assert stats["records"] == 1
        assert stats["failures"] == 1
        assert stats["learned_patterns"] == 1
        assert stats["strategies"] == {
            "api_update": {"successes": 1, "failures": 0},
            "null_check": {"successes": 0, "failures": 1},
        }

    def test_clear(self):
        store = LearningStore()
        learn(store, "boom", "a")
        store.clear()
        assert store.lookup("boom") is None
        assert store.records == [] and len(store) == 0


def run_tests():
    return run_test_classes([TestNormalization, TestLearningStore])


if __name__ == "__main__":
    sys.exit(run_tests())
