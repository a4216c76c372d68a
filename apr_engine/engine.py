"""
Repair engine façade.

Repair flow, per call to repair():
1. Localize faults from the error output (and coverage, when supplied)
2. For each fault: gather code context, generate candidates, run the
   validation loop
3. Aggregate results into a session and its statistics

The engine owns its session history, learning store and strategy
statistics. There is no shared global instance; create one engine per
project or host.
"""

import logging
import re
from datetime import datetime
from typing import Callable, Optional, Union

from . import errors, events
from .config import RepairConfig
from .errors import RepairError
from .events import RepairEvents
from .learning import LearningStore
from .localization.localizer import FaultLocalizer, LocalizationResult
from .localization.sbfl import TestCoverage
from .models import Fault, FaultSeverity, FaultType, RepairResult, RepairSession, RepairState, RepairStats, SourceLocation
from .repair.candidates import CandidateGenerator
from .repair.claude_client import GenerationClient
from .strategies.registry import StrategyRegistry
from .validation.conversational import ChatRepairContext, ChatRepairResult, ConversationalRepairer
from .validation.executors import CommandResult, FileReader, FileWriter, TestExecutor
from .validation.loop import ValidationLoop
from .validation.validator import CandidateValidator

logger = logging.getLogger(__name__)

CommandExecutor = Callable[[str], CommandResult]

GENERIC_MESSAGE_LIMIT = 500
_FILE_REFERENCE = re.compile(
    r"(?:at|in|file)\s+([^\s:]+\.(?:ts|js|tsx|jsx|py|rb|go|rs|java|c|cpp)):?(\d+)?",
    re.IGNORECASE,
)


def create_generic_fault(error_output: str) -> Optional[Fault]:
    """
    Fault for error text no diagnostic matcher understood.

    Uses the first ``at|in|file <path>[:line]`` reference; None when the
    text names no source file.
    """
    match = _FILE_REFERENCE.search(error_output)
    if not match:
        return None
    line = int(match.group(2)) if match.group(2) else 1
    return Fault(
        type=FaultType.UNKNOWN,
        severity=FaultSeverity.MEDIUM,
        message=error_output[:GENERIC_MESSAGE_LIMIT],
        location=SourceLocation(file=match.group(1), start_line=line),
        suspiciousness=0.5,
        metadata={"generic": True},
    )


class RepairEngine:
    """
    Automated program repair: localize, generate, validate.

    Usage:
        fs = LocalFileSystem(project_root)
        engine = RepairEngine(
            RepairConfig(max_iterations=2),
            client=ClaudeClient(),
            test_executor=ShellTestExecutor("pytest -q", cwd=project_root),
            file_reader=fs.read,
            file_writer=fs.write,
        )
        for result in engine.repair(error_output):
            print(engine.format_result(result))
    """

    def __init__(
        self,
        config: Optional[RepairConfig] = None,
        client: Optional[GenerationClient] = None,
        registry: Optional[StrategyRegistry] = None,
        test_executor: Optional[TestExecutor] = None,
        file_reader: Optional[FileReader] = None,
        file_writer: Optional[FileWriter] = None,
        command_executor: Optional[CommandExecutor] = None,
        event_bus: Optional[RepairEvents] = None,
        learning: Optional[LearningStore] = None,
    ):
        self.config = config or RepairConfig()
        self.client = client
        self.registry = registry or StrategyRegistry()
        self.events = event_bus or RepairEvents()
        self.learning = learning or LearningStore(
            history_cap=self.config.learning_history_cap,
            similarity_threshold=self.config.similarity_threshold,
        )
        self.sessions: list[RepairSession] = []
        self._cancelled = False
        self.set_executors(
            test_executor=test_executor,
            file_reader=file_reader,
            file_writer=file_writer,
            command_executor=command_executor,
        )

    def set_executors(
        self,
        test_executor: Optional[TestExecutor] = None,
        file_reader: Optional[FileReader] = None,
        file_writer: Optional[FileWriter] = None,
        command_executor: Optional[CommandExecutor] = None,
    ) -> None:
        """Replace the host collaborators and rebuild the pipeline around them."""
        self.test_executor = test_executor
        self.file_reader = file_reader
        self.file_writer = file_writer
        self.command_executor = command_executor
        self._build_pipeline()

    def _build_pipeline(self) -> None:
        self.localizer = FaultLocalizer(self.config.fault_localization, self.file_reader)
        self.generator = CandidateGenerator(self.registry, self.client, self.file_reader, self.config)
        self.validator = CandidateValidator(
            self.config, self.test_executor, self.file_reader, self.file_writer, self.events,
        )
        self.loop = ValidationLoop(self.config, self.generator, self.validator, self.learning, self.events)

    def update_config(self, **changes) -> None:
        """Change configuration; see RepairConfig.update()."""
        self.config.update(**changes)
        self.learning.history_cap = self.config.learning_history_cap
        self.learning.similarity_threshold = self.config.similarity_threshold
        self._build_pipeline()

    # -- repair ------------------------------------------------------------

    def localize(self, error_output: str, coverage: Optional[TestCoverage] = None) -> LocalizationResult:
        return self.localizer.localize(error_output, coverage)

    def repair(
        self,
        error_output: str,
        context_hint: Optional[str] = None,
        coverage: Optional[TestCoverage] = None,
    ) -> list[RepairResult]:
        """
        Repair every fault found in ``error_output``.

        Exceptions inside one fault's repair become a failed result for that
        fault; localization errors propagate.

        Returns:
            One RepairResult per localized fault, in localization order
        """
        self._cancelled = False
        session = RepairSession(config=self.config.snapshot())
        self.events.emit(events.SESSION_START, session_id=session.id)

        self.events.emit(events.PROGRESS, message="Localizing faults...", progress=0.1)
        localization = self.localizer.localize(error_output, coverage)
        session.faults = list(localization.faults)
        self.events.emit(events.LOCALIZATION, result=localization)

        if not session.faults:
            generic = create_generic_fault(error_output)
            if generic is not None:
                logger.info("No diagnostics recognized, using %s", generic.location)
                session.faults.append(generic)

        total = len(session.faults)
        for i, fault in enumerate(session.faults):
            if self._cancelled:
                session.cancelled = True
                session.results.append(RepairResult(
                    fault=fault, reason=errors.CANCELLED, state=RepairState.EXHAUSTED,
                ))
                continue

            self.events.emit(
                events.PROGRESS,
                message=f"Repairing fault {i + 1}/{total}...",
                progress=0.1 + 0.8 * (i + 1) / total,
            )
            result = self.repair_fault(fault, context_hint)
            session.results.append(result)
            session.stats.update(result)

        session.end_time = datetime.now()
        self._store(session)
        self.events.emit(events.SESSION_END, session=session, results=session.results)
        return list(session.results)

    def repair_fault(self, fault: Fault, context_hint: Optional[str] = None) -> RepairResult:
        """Generate and validate candidates for one fault."""
        self.events.emit(events.FAULT_START, fault=fault)
        try:
            code_context = self.code_context(fault)
            learned = self.learning.lookup(fault.message) if self.config.learning_enabled else None
            if learned is not None:
                logger.info("Trying learned strategy %s first", learned)

            candidates = self.generator.generate(
                fault, code_context, context_hint=context_hint, learned=learned,
            )
            return self.loop.run(fault, candidates, code_context)
        except Exception as e:
            logger.warning("Repair of %s failed: %s", fault.location, e, exc_info=True)
            result = RepairResult(fault=fault, reason=str(e) or type(e).__name__, state=RepairState.EXHAUSTED)
            self.events.emit(events.FAILURE, result=result)
            return result

    def code_context(self, fault: Fault) -> str:
        """The fault's snippet, or surrounding lines read from its file."""
        if fault.location.snippet:
            return fault.location.snippet
        if self.file_reader is None:
            return ""
        try:
            lines = self.file_reader(fault.location.file).split("\n")
        except (OSError, UnicodeDecodeError, KeyError):
            return ""
        around = self.config.code_context_lines
        start = max(0, fault.location.start_line - 1 - around)
        end = min(len(lines), fault.location.end_line + around)
        return "\n".join(lines[start:end])

    def chat_repair(
        self,
        target: Union[Fault, ChatRepairContext],
        test_code: Optional[str] = None,
    ) -> ChatRepairResult:
        """Run the conversational repairer with this engine's collaborators."""
        if self.client is None:
            raise RepairError("Conversational repair needs a generation client")
        context = target if isinstance(target, ChatRepairContext) else ChatRepairContext.from_fault(target, test_code)
        repairer = ConversationalRepairer(
            self.config,
            self.client,
            file_reader=self.file_reader,
            file_writer=self.file_writer,
            event_bus=self.events,
            validator=self.validator,
        )
        return repairer.repair(context)

    def collect_errors(self, command: str) -> str:
        """Run a build or lint command and return its output for repair()."""
        if self.command_executor is None:
            raise RepairError("No command executor configured")
        result = self.command_executor(command)
        logger.info("%s exited %s", command, "cleanly" if result.success else "with errors")
        return "\n".join(part for part in (result.output, result.error) if part)

    def cancel(self) -> None:
        """Stop the running session before its next fault."""
        self._cancelled = True

    # -- history and statistics -------------------------------------------

    def _store(self, session: RepairSession) -> None:
        self.sessions.append(session)
        if len(self.sessions) > self.config.max_sessions:
            self.sessions = self.sessions[-self.config.max_sessions:]

    def history(self) -> list[RepairSession]:
        return list(self.sessions)

    def clear_history(self) -> None:
        self.sessions = []
        self.learning.clear()

    def statistics(self) -> RepairStats:
        """Aggregate statistics over the retained sessions."""
        stats = RepairStats()
        for session in self.sessions:
            for result in session.results:
                if result.reason == errors.CANCELLED:
                    continue
                stats.update(result)
        stats.template_success_rates = {
            strategy_id: info["success_rate"]
            for strategy_id, info in self.registry.statistics().items()
            if info["attempts"]
        }
        return stats

    def format_result(self, result: RepairResult) -> str:
        """Human-readable report of one repair result."""
        rule = "=" * 60
        thin = "-" * 40
        message = result.fault.message
        if len(message) > 80:
            message = message[:80] + "..."

        lines = [
            rule,
            "AUTOMATED PROGRAM REPAIR RESULT",
            rule,
            "",
            f"Status: {'Fixed' if result.success else 'Not Fixed'}",
            f"Fault: {message}",
            f"Location: {result.fault.location}",
            f"Candidates: {result.candidates_generated} generated, {result.candidates_tested} tested",
            f"Iterations: {result.iterations}",
            f"Duration: {result.duration:.2f}s",
        ]

        if result.applied_patch:
            patch = result.applied_patch
            lines += ["", thin, "Applied Fix:", thin]
            lines.append(f"Strategy: {patch.strategy}")
            lines.append(f"Explanation: {patch.explanation}")
            lines.append("")
            lines.append("Changes:")
            for change in patch.changes:
                lines.append(f"  {change.file}:{change.start_line}-{change.end_line}")
                lines.append("  - " + change.original_text.replace("\n", "\n  - "))
                lines.append("  + " + change.new_text.replace("\n", "\n  + "))
        elif result.reason:
            lines += ["", f"Reason: {result.reason}"]

        lines += ["", rule]
        return "\n".join(lines)
