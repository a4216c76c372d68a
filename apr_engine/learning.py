"""
Learning from past repairs.

Error messages are normalized (positions, quoted paths and case removed) and
hashed. A successful repair maps the hash to the strategy that fixed it, so
a later fault with the same signature tries that strategy first.
"""

import difflib
import hashlib
import logging
import re
from typing import Optional

from .languages import file_type
from .models import Fault, LearningRecord, Patch

logger = logging.getLogger(__name__)

_POSITION = re.compile(r":\d+:\d+")
_QUOTED_PATH = re.compile(r"['\"][\w/\\.-]+['\"]")


def normalize_message(message: str) -> str:
    """Strip ``:line:col`` tokens and quoted paths, lowercase."""
    normalized = _POSITION.sub("", message)
    normalized = _QUOTED_PATH.sub("", normalized)
    return normalized.lower().strip()


def error_hash(message: str) -> str:
    """Stable signature of an error message."""
    return hashlib.sha256(normalize_message(message).encode("utf-8")).hexdigest()[:16]


def _cap(items: list, limit: int) -> list:
    """Keep the most recent half once ``limit`` is exceeded."""
    if len(items) > limit:
        return items[-(limit // 2):]
    return items


class LearningStore:
    """
    Maps error signatures to the strategies that fixed them.

    Usage:
        store = LearningStore()
        store.record_success(fault, patch)
        strategy_id = store.lookup(other_fault.message)
    """

    def __init__(self, history_cap: int = 1000, similarity_threshold: float = 0.75):
        self.history_cap = history_cap
        self.similarity_threshold = similarity_threshold
        self._strategies: dict[str, str] = {}
        self._messages: dict[str, str] = {}
        self.records: list[LearningRecord] = []
        self.failures: list[tuple[str, str]] = []

    def __len__(self) -> int:
        return len(self._strategies)

    def record_success(
        self,
        fault: Fault,
        patch: Patch,
        failed_patches: Optional[list[Patch]] = None,
        code_context: str = "",
    ) -> str:
        """Remember ``patch.strategy`` for the fault's signature; returns the hash."""
        key = error_hash(fault.message)
        # Re-learning a signature moves it to the most recent end
        self._strategies.pop(key, None)
        self._messages.pop(key, None)
        self._strategies[key] = patch.strategy
        self._messages[key] = normalize_message(fault.message)

        self.records.append(LearningRecord(
            fault=fault,
            successful_patch=patch,
            failed_patches=list(failed_patches or []),
            code_context=code_context or fault.location.snippet or "",
            file_type=file_type(fault.location.file),
        ))
        self.records = _cap(self.records, self.history_cap)

        # Keep the signature index bounded the same way
        if len(self._strategies) > self.history_cap:
            keep = list(self._strategies)[-(self.history_cap // 2):]
            self._strategies = {k: self._strategies[k] for k in keep}
            self._messages = {k: self._messages[k] for k in keep}

        logger.debug("Learned %s -> %s", key, patch.strategy)
        return key

    def record_failure(self, fault: Fault, patch: Patch) -> None:
        self.failures.append((error_hash(fault.message), patch.strategy))
        self.failures = _cap(self.failures, self.history_cap)

    def lookup(self, message: str) -> Optional[str]:
        """
        Strategy that fixed this error signature before, or None.

        Falls back to the most similar stored message when its difflib ratio
        reaches ``similarity_threshold``.
        """
        key = error_hash(message)
        if key in self._strategies:
            return self._strategies[key]

        normalized = normalize_message(message)
        best_key, best_ratio = None, 0.0
        for stored_key, stored in self._messages.items():
            ratio = difflib.SequenceMatcher(None, normalized, stored).ratio()
            if ratio > best_ratio:
                best_key, best_ratio = stored_key, ratio

        if best_key is not None and best_ratio >= self.similarity_threshold:
            logger.debug("Partial learning match (ratio %.2f)", best_ratio)
            return self._strategies[best_key]
        return None

    def learned_patterns(self) -> dict[str, str]:
        return dict(self._strategies)

    def statistics(self) -> dict:
        """Successes and failures per strategy plus store sizes."""
        per_strategy: dict[str, dict[str, int]] = {}
        for record in self.records:
            entry = per_strategy.setdefault(record.successful_patch.strategy, {"successes": 0, "failures": 0})
            entry["successes"] += 1
        for _, strategy in self.failures:
            entry = per_strategy.setdefault(strategy, {"successes": 0, "failures": 0})
            entry["failures"] += 1
        return {
            "records": len(self.records),
            "failures": len(self.failures),
            "learned_patterns": len(self._strategies),
            "strategies": per_strategy,
        }

    def clear(self) -> None:
        self._strategies.clear()
        self._messages.clear()
        self.records.clear()
        self.failures.clear()
