"""Fault localization: diagnostic parsing and spectrum-based scoring."""

from .metrics import SuspiciousnessMetric, score
from .sbfl import CoverageMatrix, SpectrumAnalyzer, TestCoverage

__all__ = ["CoverageMatrix", "SpectrumAnalyzer", "SuspiciousnessMetric", "TestCoverage", "score"]
