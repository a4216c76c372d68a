"""
Strategy registry.

A strategy is a named, pattern-driven fix generator: an ordered list of
regexes that recognize an error signature, an ordered list of pure
functions producing fix text, and a description. Strategies live in a
registry keyed by id, so adding one never touches the engine.

The registry also keeps per-strategy success counters. Success rates break
ties between equally scored strategies and feed template confidence.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from ..models import Fault, FaultType

logger = logging.getLogger(__name__)

# Score contributions used when ordering strategies for a fault
MESSAGE_MATCH_SCORE = 10
CONTEXT_MATCH_SCORE = 5
TYPE_ALIGNMENT_SCORE = 5
CATCH_ALL_SCORE = 1
DEFAULT_SUCCESS_RATE = 0.5


@dataclass
class FixContext:
    """What a fix generator may look at besides its regex match."""
    fault: Fault
    code_context: str
    language: str
    target_line: str = ""


FixGenerator = Callable[[Optional[re.Match], FixContext], Optional[str]]


@dataclass
class Strategy:
    """
    A registry entry.

    Attributes:
        id: Unique strategy id, used as the candidate's strategy tag
        description: Human-readable summary, used as patch explanation
        patterns: Ordered regexes matched against message and code context
        fix_generators: Ordered pure functions (match, context) -> fix text
        fault_types: Fault types this strategy is aligned with
        priority: 1-10, higher means more trustworthy fixes
        catch_all: Matches everything, always ordered last
    """
    id: str
    description: str
    patterns: list[re.Pattern]
    fix_generators: list[FixGenerator]
    fault_types: tuple[FaultType, ...] = ()
    priority: int = 5
    catch_all: bool = False

    def match(self, text: str) -> Optional[re.Match]:
        """First pattern match against ``text``, in pattern order."""
        if not text:
            return None
        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                return match
        return None


@dataclass
class StrategyStats:
    successes: int = 0
    attempts: int = 0


class StrategyRegistry:
    """
    Ordered collection of strategies with success bookkeeping.

    Usage:
        registry = StrategyRegistry()            # built-in table
        registry.register(my_strategy)
        ordered = registry.prioritize(fault, code_context)
    """

    def __init__(self, strategies: Optional[list[Strategy]] = None):
        if strategies is None:
            from .builtin import builtin_strategies
            strategies = builtin_strategies()
        self._strategies: dict[str, Strategy] = {}
        self._stats: dict[str, StrategyStats] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: Strategy) -> None:
        """Add a strategy, replacing any existing one with the same id."""
        self._strategies[strategy.id] = strategy

    def unregister(self, strategy_id: str) -> bool:
        return self._strategies.pop(strategy_id, None) is not None

    def get(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    def __iter__(self) -> Iterator[Strategy]:
        return iter(list(self._strategies.values()))

    def __len__(self) -> int:
        return len(self._strategies)

    @property
    def ids(self) -> list[str]:
        return list(self._strategies)

    def record_result(self, strategy_id: str, success: bool) -> None:
        """Count one validated candidate produced by ``strategy_id``."""
        stats = self._stats.setdefault(strategy_id, StrategyStats())
        stats.attempts += 1
        if success:
            stats.successes += 1

    def success_rate(self, strategy_id: str) -> float:
        stats = self._stats.get(strategy_id)
        if stats is None or stats.attempts == 0:
            return DEFAULT_SUCCESS_RATE
        return stats.successes / stats.attempts

    def statistics(self) -> dict[str, dict]:
        """Per-strategy attempts, successes and success rate."""
        report = {}
        for strategy in self:
            stats = self._stats.get(strategy.id, StrategyStats())
            report[strategy.id] = {
                "description": strategy.description,
                "attempts": stats.attempts,
                "successes": stats.successes,
                "success_rate": self.success_rate(strategy.id),
            }
        return report

    def score(self, strategy: Strategy, fault: Fault, code_context: str = "") -> int:
        """
        Score how well a strategy fits a fault.

        +10 per pattern matching the fault message, +5 per pattern matching
        the code context, +5 when the fault type is one the strategy is
        aligned with. Catch-all strategies always score 1.
        """
        if strategy.catch_all:
            return CATCH_ALL_SCORE

        total = 0
        for pattern in strategy.patterns:
            if pattern.search(fault.message):
                total += MESSAGE_MATCH_SCORE
            if code_context and pattern.search(code_context):
                total += CONTEXT_MATCH_SCORE
        if fault.type in strategy.fault_types:
            total += TYPE_ALIGNMENT_SCORE
        return total

    def prioritize(
        self,
        fault: Fault,
        code_context: str = "",
        learned: Optional[str] = None,
    ) -> list[Strategy]:
        """
        Order strategies for a fault.

        Strategies scoring <= 0 are dropped. The rest are sorted by score,
        then by recorded success rate, then by registration order, with
        catch-all strategies last. A ``learned`` strategy id moves to the
        front regardless of its score.
        """
        scored = []
        for index, strategy in enumerate(self):
            value = self.score(strategy, fault, code_context)
            if value <= 0 and strategy.id != learned:
                continue
            scored.append((strategy, value, index))

        scored.sort(key=lambda item: (
            item[0].catch_all,
            -item[1],
            -self.success_rate(item[0].id),
            item[2],
        ))
        ordered = [strategy for strategy, _, _ in scored]

        if learned is not None and learned in self._strategies:
            learned_strategy = self._strategies[learned]
            ordered = [learned_strategy] + [s for s in ordered if s.id != learned]
            logger.debug("Learned strategy %s moved to front", learned)

        return ordered
