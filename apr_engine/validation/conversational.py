"""
Conversational repair.

A multi-turn alternative to the validation loop. The generation client sees
the whole transcript: a system turn with the bug's context, then alternating
requests and replies, with test feedback after every failed attempt. Each
reply passes a cheap plausibility gate before it may cost a test run.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from .. import errors, events
from ..config import RepairConfig
from ..errors import GenerationTimeout
from ..events import RepairEvents
from ..models import ConversationTurn, Fault, FaultSeverity, FaultType, Patch, PatchChange, SourceLocation, ValidationResult
from ..repair.claude_client import GenerationClient
from ..repair.prompt_builder import (
    INITIAL_CHAT_MESSAGE,
    ChatPromptContext,
    build_chat_system_prompt,
    build_follow_up_message,
    build_rejection_message,
    build_test_feedback_message,
)
from ..repair.response_parser import extract_chat_patch
from .executors import FileReader, FileWriter, TestExecutor, call_with_timeout
from .validator import CandidateValidator

logger = logging.getLogger(__name__)

CHAT_STRATEGY = "chat_repair"
PLACEHOLDERS = ("TODO", "FIXME", "...")
UNCLOSED = {"{": "Unclosed brace", "(": "Unclosed parenthesis", "[": "Unclosed bracket"}
NO_CODE_MESSAGE = "No code block was found in your reply. Please return the corrected code in a fenced code block."


def check_plausibility(patch_text: Optional[str], original: Optional[str] = None) -> Optional[str]:
    """
    Cheap, test-free rejection of obviously bad patches.

    Returns:
        The rejection reason, or None when the patch is plausible
    """
    if not patch_text or not patch_text.strip():
        return "Empty patch"

    stripped = patch_text.rstrip()
    if stripped[-1] in UNCLOSED:
        return UNCLOSED[stripped[-1]]

    if original is not None and patch_text.strip() == original.strip():
        return "Patch identical to original code"

    if any(token in patch_text for token in PLACEHOLDERS):
        return "Patch contains placeholders"

    return None


@dataclass
class ChatRepairContext:
    """
    The bug handed to ConversationalRepairer.

    Attributes:
        file: File containing the bug
        error_message: Diagnostic being repaired
        start_line: First line of the buggy code (located from the snippet
            when omitted)
        end_line: Last line of the buggy code
        code_snippet: The buggy code; read from the file when omitted
        stack_trace: Optional stack trace
        test_code: Source of the failing test, if available
    """
    file: str
    error_message: str
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    code_snippet: Optional[str] = None
    stack_trace: Optional[str] = None
    test_code: Optional[str] = None

    @classmethod
    def from_fault(cls, fault: Fault, test_code: Optional[str] = None) -> "ChatRepairContext":
        return cls(
            file=fault.location.file,
            error_message=fault.message,
            start_line=fault.location.start_line,
            end_line=fault.location.end_line,
            stack_trace=fault.stack_trace,
            test_code=test_code,
        )

    def prompt_context(self) -> ChatPromptContext:
        return ChatPromptContext(
            file=self.file,
            error_message=self.error_message,
            line=self.start_line,
            stack_trace=self.stack_trace,
            code_snippet=self.code_snippet,
            test_code=self.test_code,
        )


@dataclass
class ChatAttempt:
    """A plausible patch that was applied and tested."""
    turn: int
    patch: Patch
    result: ValidationResult


@dataclass
class ChatRepairResult:
    success: bool
    conversation: list[ConversationTurn]
    attempts: list[ChatAttempt] = field(default_factory=list)
    applied_patch: Optional[Patch] = None
    lessons: list[str] = field(default_factory=list)
    reason: Optional[str] = None
    duration: float = 0.0

    @property
    def final_patch(self) -> Optional[str]:
        return self.applied_patch.text if self.applied_patch else None


def locate_snippet(content: str, snippet: str) -> Optional[int]:
    """1-based line where ``snippet`` starts in ``content``, or None."""
    lines = content.splitlines()
    wanted = [line.strip() for line in snippet.strip("\n").splitlines()]
    if not wanted:
        return None
    for index in range(len(lines) - len(wanted) + 1):
        if [line.strip() for line in lines[index:index + len(wanted)]] == wanted:
            return index + 1
    return None


class ConversationalRepairer:
    """
    Multi-turn repair dialogue with plausibility gating.

    Usage:
        repairer = ConversationalRepairer(config, client, test_executor, read, write)
        result = repairer.repair(ChatRepairContext(file="src/a.py", error_message=..., start_line=12))
        for turn in result.conversation:
            print(turn.role, turn.content)
    """

    def __init__(
        self,
        config: RepairConfig,
        client: GenerationClient,
        test_executor: Optional[TestExecutor] = None,
        file_reader: Optional[FileReader] = None,
        file_writer: Optional[FileWriter] = None,
        event_bus: Optional[RepairEvents] = None,
        validator: Optional[CandidateValidator] = None,
    ):
        self.config = config
        self.client = client
        self.file_reader = file_reader
        self.file_writer = file_writer
        self.events = event_bus or RepairEvents()
        self.validator = validator or CandidateValidator(
            config, test_executor, file_reader, file_writer, self.events,
        )

    def repair(self, context: ChatRepairContext) -> ChatRepairResult:
        start = time.monotonic()
        self._resolve_range(context)
        if context.start_line is None:
            logger.warning("Cannot place a chat patch in %s: no line range", context.file)
            return ChatRepairResult(
                success=False,
                conversation=[],
                reason=errors.NO_CHAT_LOCATION,
                duration=time.monotonic() - start,
            )
        original_content = self._read(context.file)

        conversation = [ConversationTurn(role="system", content=build_chat_system_prompt(context.prompt_context()))]
        result = ChatRepairResult(success=False, conversation=conversation)
        fault = self._fault_for(context)
        self.events.emit(events.CHAT_START, file=context.file)

        prompt = INITIAL_CHAT_MESSAGE
        implausible = 0
        for turn in range(self.config.max_chat_turns):
            if implausible >= self.config.max_implausible_turns:
                result.reason = f"No plausible patch in {implausible} consecutive turns"
                break

            response = self._generate(prompt, conversation)
            conversation.append(ConversationTurn(role="user", content=prompt))
            if response is None:
                implausible += 1
                result.lessons.append("Generation failed")
                continue
            conversation.append(ConversationTurn(role="assistant", content=response))

            patch_text = extract_chat_patch(response)
            if patch_text is None:
                implausible += 1
                result.lessons.append("Could not extract valid patch from response")
                prompt = NO_CODE_MESSAGE
                continue

            reason = check_plausibility(patch_text, context.code_snippet)
            if reason is not None:
                implausible += 1
                result.lessons.append(f"Patch rejected: {reason}")
                logger.debug("Chat turn %d rejected: %s", turn + 1, reason)
                prompt = build_rejection_message(reason)
                continue

            implausible = 0
            patch = self._patch_for(fault, context, patch_text)
            outcome = self.validator.validate(patch)
            result.attempts.append(ChatAttempt(turn=turn, patch=patch, result=outcome))
            self.events.emit(events.CHAT_ATTEMPT, attempt=turn + 1, success=outcome.accepted, result=outcome)

            if outcome.accepted:
                result.success = True
                result.applied_patch = patch
                result.lessons.append("Conversational repair fixed the bug")
                result.duration = time.monotonic() - start
                logger.info("Conversational repair succeeded on turn %d", turn + 1)
                return result

            conversation.append(ConversationTurn(role="user", content=build_test_feedback_message(outcome)))
            prompt = build_follow_up_message(outcome)

        if result.reason is None:
            result.reason = f"No passing patch after {self.config.max_chat_turns} turns"
        self._rollback(context.file, original_content)
        result.duration = time.monotonic() - start
        return result

    def _generate(self, prompt: str, conversation: list[ConversationTurn]) -> Optional[str]:
        try:
            return call_with_timeout(
                self.client, self.config.generation_timeout, GenerationTimeout,
                prompt, list(conversation),
            )
        except GenerationTimeout as e:
            logger.warning("Chat generation abandoned: %s", e)
        except Exception as e:
            logger.warning("Chat generation failed: %s", e)
        return None

    def _read(self, path: str) -> Optional[str]:
        if self.file_reader is None:
            return None
        try:
            return self.file_reader(path)
        except (OSError, UnicodeDecodeError, KeyError):
            return None

    def _resolve_range(self, context: ChatRepairContext) -> None:
        """Fill in whichever of snippet and line range is missing."""
        content = self._read(context.file)
        if context.start_line is None and context.code_snippet and content is not None:
            context.start_line = locate_snippet(content, context.code_snippet)
        if context.start_line is None:
            return
        if context.end_line is None:
            span = len(context.code_snippet.strip("\n").splitlines()) if context.code_snippet else 1
            context.end_line = context.start_line + max(span, 1) - 1
        if context.code_snippet is None and content is not None:
            lines = content.splitlines()
            context.code_snippet = "\n".join(lines[context.start_line - 1:context.end_line])

    def _fault_for(self, context: ChatRepairContext) -> Fault:
        return Fault(
            type=FaultType.UNKNOWN,
            severity=FaultSeverity.MEDIUM,
            message=context.error_message,
            location=SourceLocation(
                file=context.file,
                start_line=context.start_line,
                end_line=context.end_line,
                snippet=context.code_snippet,
            ),
            stack_trace=context.stack_trace,
        )

    def _patch_for(self, fault: Fault, context: ChatRepairContext, patch_text: str) -> Patch:
        location = fault.location
        return Patch(
            fault=fault,
            changes=[PatchChange(
                file=location.file,
                start_line=location.start_line,
                end_line=location.end_line,
                original_text=context.code_snippet or "",
                new_text=patch_text,
            )],
            strategy=CHAT_STRATEGY,
            generated_by="llm",
            confidence=0.5,
            explanation="Conversational repair",
        )

    def _rollback(self, path: str, original: Optional[str]) -> None:
        """Make sure a failed dialogue leaves the file as it found it."""
        if original is None or self.file_writer is None:
            return
        if self._read(path) != original:
            self.file_writer(path, original)
            self.events.emit(events.ROLLBACK, files=[path])
            logger.info("Rolled back %s", path)
