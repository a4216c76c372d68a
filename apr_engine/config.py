"""
Configuration for the repair engine.

The host application owns configuration loading; this module only defines
the dataclasses, their defaults, and construction from plain dicts.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any

from .localization.metrics import SuspiciousnessMetric


@dataclass
class FaultLocalizationConfig:
    """Options for FaultLocalizer."""
    metric: SuspiciousnessMetric = SuspiciousnessMetric.OCHIAI
    threshold: float = 0.3
    max_statements: int = 20
    use_stack_trace: bool = True
    use_static_analysis: bool = True
    # Fusion weights for faults that also appear in the spectrum ranking
    static_weight: float = 0.6
    spectrum_weight: float = 0.4
    # Lines of context attached as a snippet on either side of a fault
    snippet_context_lines: int = 3

    def __post_init__(self):
        if isinstance(self.metric, str):
            self.metric = SuspiciousnessMetric(self.metric.lower())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FaultLocalizationConfig":
        _reject_unknown(cls, data)
        return cls(**data)


@dataclass
class RepairConfig:
    """
    Options for RepairEngine.

    Attributes:
        use_templates: Generate candidates from the strategy registry
        use_llm: Generate candidates from the generation client
        max_candidates: Candidate budget per fault (templates get half when
            both sources are enabled)
        max_iterations: Validation rounds per fault; refinement happens
            between rounds
        validate_with_tests: Run the test executor for each candidate
        learning_enabled: Record successful strategies for re-ordering
        test_timeout: Seconds before a test run counts as failed
        generation_timeout: Seconds before a generation request is abandoned
        similarity_threshold: Minimum ratio for a partial learning match
    """
    use_templates: bool = True
    use_llm: bool = True
    max_candidates: int = 5
    max_iterations: int = 3
    validate_with_tests: bool = True
    learning_enabled: bool = True
    fault_localization: FaultLocalizationConfig = field(default_factory=FaultLocalizationConfig)
    test_timeout: float = 120.0
    generation_timeout: float = 60.0
    similarity_threshold: float = 0.75
    code_context_lines: int = 10
    learning_history_cap: int = 1000
    max_sessions: int = 50
    max_chat_turns: int = 5
    max_implausible_turns: int = 3

    def __post_init__(self):
        if isinstance(self.fault_localization, dict):
            self.fault_localization = FaultLocalizationConfig.from_dict(self.fault_localization)
        if self.max_candidates < 0:
            raise ValueError("max_candidates must be >= 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RepairConfig":
        """Build a config from a plain dict, e.g. parsed from a project file."""
        _reject_unknown(cls, data)
        return cls(**data)

    def update(self, **changes: Any) -> None:
        """Update fields in place; a ``fault_localization`` dict is merged."""
        _reject_unknown(type(self), changes)
        fl_changes = changes.pop("fault_localization", None)
        for name, value in changes.items():
            setattr(self, name, value)
        if isinstance(fl_changes, FaultLocalizationConfig):
            self.fault_localization = fl_changes
        elif fl_changes:
            _reject_unknown(FaultLocalizationConfig, fl_changes)
            merged = {**asdict(self.fault_localization), **fl_changes}
            self.fault_localization = FaultLocalizationConfig(**merged)
        self.__post_init__()

    def snapshot(self) -> dict[str, Any]:
        """JSON-friendly copy stored on each session."""
        data = asdict(self)
        data["fault_localization"]["metric"] = self.fault_localization.metric.value
        return data


def _reject_unknown(cls, data: dict[str, Any]) -> None:
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} option(s): {', '.join(sorted(unknown))}")
