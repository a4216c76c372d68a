"""Pattern-driven template repair strategies."""

from .builtin import builtin_strategies
from .registry import FixContext, Strategy, StrategyRegistry
from .rewrite import apply_fix

__all__ = ["FixContext", "Strategy", "StrategyRegistry", "apply_fix", "builtin_strategies"]
