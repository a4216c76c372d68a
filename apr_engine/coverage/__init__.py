"""Coverage input for spectrum-based fault localization."""

from .loader import context_tests, load_coverage_json, outcomes_from_failing, parse_coverage_report

__all__ = ["context_tests", "load_coverage_json", "outcomes_from_failing", "parse_coverage_report"]
