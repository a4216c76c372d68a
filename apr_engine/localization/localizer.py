"""
Fault localization.

Combines static diagnostic parsing with spectrum-based suspiciousness:

1. Parse each line of the error output against the diagnostic table
2. Extract stack frames and attach them as related locations
3. Score covered statements from test coverage (when supplied)
4. Fuse spectrum scores into matching faults, promote strong statements
5. Deduplicate, sort, truncate, and attach code snippets
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..config import FaultLocalizationConfig
from ..models import Fault, FaultSeverity, FaultType, SuspiciousStatement
from .diagnostics import extract_stack_frames, parse_diagnostics
from .metrics import clamp
from .sbfl import SpectrumAnalyzer, TestCoverage

logger = logging.getLogger(__name__)

FileReader = Callable[[str], str]

MAX_RELATED_LOCATIONS = 5
# Spectrum statements at or above this score become faults of their own
PROMOTION_THRESHOLD = 0.5


@dataclass
class LocalizationResult:
    """Output of FaultLocalizer.localize()."""
    faults: list[Fault] = field(default_factory=list)
    suspicious_statements: list[SuspiciousStatement] = field(default_factory=list)
    coverage: Optional[TestCoverage] = None
    analysis_time: float = 0.0


def deduplicate(faults: list[Fault]) -> list[Fault]:
    """Keep the first fault for each (file, start_line)."""
    seen = set()
    unique = []
    for fault in faults:
        if fault.location.key in seen:
            continue
        seen.add(fault.location.key)
        unique.append(fault)
    return unique


class FaultLocalizer:
    """
    Ranks probable fault locations from diagnostic text and coverage.

    Usage:
        localizer = FaultLocalizer(FaultLocalizationConfig(), file_reader=read)
        result = localizer.localize(error_output, coverage)
        for fault in result.faults:
            print(fault.location, fault.suspiciousness)
    """

    def __init__(
        self,
        config: Optional[FaultLocalizationConfig] = None,
        file_reader: Optional[FileReader] = None,
    ):
        """
        Initialize the localizer.

        Args:
            config: Localization options (metric, threshold, limits)
            file_reader: Optional callable returning a file's text, used to
                         attach code snippets to faults
        """
        self.config = config or FaultLocalizationConfig()
        self.file_reader = file_reader

    def localize(self, error_output: str, coverage: Optional[TestCoverage] = None) -> LocalizationResult:
        """
        Localize faults from error output and optional coverage.

        Returns an empty fault list when nothing could be parsed; the caller
        decides whether to synthesize a fault from the raw text.
        """
        start = time.monotonic()

        faults: list[Fault] = []
        if self.config.use_static_analysis:
            faults = deduplicate(parse_diagnostics(error_output))

        if self.config.use_stack_trace:
            self._attach_stack_frames(faults, error_output)

        statements: list[SuspiciousStatement] = []
        if coverage is not None:
            analyzer = SpectrumAnalyzer(self.config.metric, self.config.threshold)
            statements = analyzer.analyze(coverage)
            logger.debug("Spectrum analysis kept %d statement(s)", len(statements))

        ranked = self._rank(faults, statements)
        ranked = ranked[:self.config.max_statements]

        if self.file_reader is not None:
            self._attach_snippets(ranked)

        logger.info("Localized %d fault(s)", len(ranked))
        return LocalizationResult(
            faults=ranked,
            suspicious_statements=statements[:self.config.max_statements],
            coverage=coverage,
            analysis_time=time.monotonic() - start,
        )

    def _attach_stack_frames(self, faults: list[Fault], error_output: str) -> None:
        """Attach frames as related locations, or synthesize a fault from them."""
        frames = extract_stack_frames(error_output)
        if not frames:
            return

        for fault in faults:
            related = [frame for frame in frames if frame.key != fault.location.key]
            if related:
                fault.related_locations = related[:MAX_RELATED_LOCATIONS]

        if not faults:
            faults.append(Fault(
                type=FaultType.RUNTIME_ERROR,
                severity=FaultSeverity.HIGH,
                message="Error detected from stack trace",
                location=frames[0],
                related_locations=frames[1:MAX_RELATED_LOCATIONS],
                suspiciousness=0.9,
                stack_trace=error_output,
                metadata={"from_stack": True},
            ))

    def _rank(self, faults: list[Fault], statements: list[SuspiciousStatement]) -> list[Fault]:
        """Fuse spectrum scores into faults, promote strong statements, sort."""
        spectrum = {}
        for statement in statements:
            spectrum.setdefault(statement.location.key, clamp(statement.suspiciousness))

        for fault in faults:
            spectrum_score = spectrum.get(fault.location.key)
            if spectrum_score is not None:
                fault.suspiciousness = (
                    self.config.static_weight * fault.suspiciousness
                    + self.config.spectrum_weight * spectrum_score
                )
                fault.metadata["spectrum_score"] = spectrum_score

        known = {fault.location.key for fault in faults}
        for statement in statements:
            if statement.location.key in known or statement.suspiciousness < PROMOTION_THRESHOLD:
                continue
            known.add(statement.location.key)
            faults.append(Fault(
                type=FaultType.UNKNOWN,
                severity=FaultSeverity.MEDIUM,
                message="Suspicious statement from spectrum analysis",
                location=statement.location,
                suspiciousness=clamp(statement.suspiciousness),
                metadata={"from_spectrum": True, "metric": statement.metric},
            ))

        # sorted() is stable, so equal scores keep parse order
        return sorted(deduplicate(faults), key=lambda f: -f.suspiciousness)

    def _attach_snippets(self, faults: list[Fault]) -> None:
        context = self.config.snippet_context_lines
        for fault in faults:
            try:
                content = self.file_reader(fault.location.file)
            except (OSError, UnicodeDecodeError, KeyError):
                logger.debug("Could not read %s for snippet", fault.location.file)
                continue
            lines = content.split("\n")
            start = max(0, fault.location.start_line - 1 - context)
            end = min(len(lines), fault.location.end_line + context)
            fault.location.snippet = "\n".join(lines[start:end])

    def analyze_single_error(self, message: str) -> Optional[Fault]:
        """Build a fault from one diagnostic line, or None if it has no location."""
        faults = parse_diagnostics(message.strip())
        return faults[0] if faults else None
