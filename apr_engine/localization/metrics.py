"""
Suspiciousness metrics for spectrum-based fault localization.

Every metric is a pure function of the four spectrum counts of a statement:

    ef: # failing tests executing the statement
    ep: # passing tests executing the statement
    nf: # failing tests NOT executing the statement
    np: # passing tests NOT executing the statement

Ochiai, Tarantula, Jaccard and Barinel are bounded to [0, 1]. DStar and Op2
are not; callers that need [0, 1] must clamp.
"""

import math
from enum import Enum


class SuspiciousnessMetric(Enum):
    """Available suspiciousness metrics for SBFL."""
    OCHIAI = "ochiai"
    TARANTULA = "tarantula"
    JACCARD = "jaccard"
    DSTAR = "dstar"
    BARINEL = "barinel"
    OP2 = "op2"


def tarantula(ef: int, ep: int, nf: int, np: int) -> float:
    """
    Formula: (ef / total_failed) / ((ef / total_failed) + (ep / total_passed))

    Returns 0 when there are no failing or no passing tests.
    """
    total_failed = ef + nf
    total_passed = ep + np
    if total_failed == 0 or total_passed == 0:
        return 0.0

    fail_ratio = ef / total_failed
    pass_ratio = ep / total_passed
    denominator = fail_ratio + pass_ratio
    if denominator == 0:
        return 0.0
    return fail_ratio / denominator


def ochiai(ef: int, ep: int, nf: int, np: int) -> float:
    """Formula: ef / sqrt(total_failed * (ef + ep))"""
    denominator = math.sqrt((ef + nf) * (ef + ep))
    if denominator == 0:
        return 0.0
    return ef / denominator


def jaccard(ef: int, ep: int, nf: int, np: int) -> float:
    """Formula: ef / (ef + nf + ep)"""
    denominator = ef + nf + ep
    if denominator == 0:
        return 0.0
    return ef / denominator


def dstar(ef: int, ep: int, nf: int, np: int, star: int = 2) -> float:
    """
    Formula: ef^* / (ep + nf), with * = 2.

    Unbounded. A statement executed by every failing test and no passing
    test has a zero denominator and scores 0 here.
    """
    denominator = ep + nf
    if denominator == 0:
        return 0.0
    return (ef ** star) / denominator


def barinel(ef: int, ep: int, nf: int, np: int) -> float:
    """Formula: 1 - ep / (ep + ef)"""
    denominator = ep + ef
    if denominator == 0:
        return 0.0
    return 1.0 - ep / denominator


def op2(ef: int, ep: int, nf: int, np: int) -> float:
    """Formula: ef - ep / (total_passed + 1). May be negative."""
    total_passed = ep + np
    return ef - ep / (total_passed + 1)


_FORMULAS = {
    SuspiciousnessMetric.TARANTULA: tarantula,
    SuspiciousnessMetric.OCHIAI: ochiai,
    SuspiciousnessMetric.JACCARD: jaccard,
    SuspiciousnessMetric.DSTAR: dstar,
    SuspiciousnessMetric.BARINEL: barinel,
    SuspiciousnessMetric.OP2: op2,
}


def score(metric, ef: int, ep: int, nf: int, np: int) -> float:
    """
    Compute suspiciousness with the given metric.

    Args:
        metric: A SuspiciousnessMetric or its string value (e.g. "ochiai")

    Raises:
        ValueError: If the metric is unknown or a count is negative
    """
    if isinstance(metric, str):
        metric = SuspiciousnessMetric(metric.lower())
    if min(ef, ep, nf, np) < 0:
        raise ValueError(f"Spectrum counts must be non-negative: {(ef, ep, nf, np)}")
    formula = _FORMULAS.get(metric)
    if formula is None:
        raise ValueError(f"Unknown metric: {metric}")
    return float(formula(ef, ep, nf, np))


def clamp(value: float) -> float:
    """Clamp a score to [0, 1]."""
    return max(0.0, min(1.0, value))
