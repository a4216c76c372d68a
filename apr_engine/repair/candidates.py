"""
Candidate patch generation.

Candidates come from two independent sources, in pool order:

1. Templates: strategies from the registry, in priority order, each
   contributing its first applicable fix not tried before
2. Model-guided: independent generation requests with increasing
   temperature, parsed from a <fix> block or a fenced code block

After a validation round in which every candidate failed, refine() asks the
generation client for one more candidate informed by the failures.
"""

import logging
from typing import Iterable, Optional

from ..config import RepairConfig
from ..errors import GenerationTimeout
from ..languages import detect_language
from ..localization.metrics import clamp
from ..models import ConversationTurn, Fault, FaultSeverity, Patch, PatchChange
from ..strategies.registry import FixContext, Strategy, StrategyRegistry
from ..strategies.rewrite import apply_fix
from ..validation.executors import FileReader, call_with_timeout
from .claude_client import GenerationClient
from .prompt_builder import REPAIR_SYSTEM_PROMPT, build_refinement_prompt, build_repair_prompt
from .response_parser import parse_fix_block

logger = logging.getLogger(__name__)

REFINED_STRATEGY = "llm_refined"
BASE_TEMPERATURE = 0.3
TEMPERATURE_STEP = 0.2
REFINEMENT_TEMPERATURE = 0.5

# Template confidence: base + rate weight * success rate + priority weight * priority/10
TEMPLATE_BASE_CONFIDENCE = 0.5
SUCCESS_RATE_WEIGHT = 0.3
PRIORITY_WEIGHT = 0.2
SEVERITY_ADJUSTMENT = {
    FaultSeverity.CRITICAL: -0.1,
    FaultSeverity.LOW: 0.1,
}


def patch_key(patch: Patch) -> tuple[str, str]:
    """Identity of a candidate for "already tried" checks."""
    return (patch.strategy, patch.text)


class CandidateGenerator:
    """
    Produces ranked candidate patches for a fault.

    Usage:
        generator = CandidateGenerator(registry, client, file_reader, config)
        candidates = generator.generate(fault, code_context)
        ...
        candidates += generator.refine(fault, code_context, failed)
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        client: Optional[GenerationClient] = None,
        file_reader: Optional[FileReader] = None,
        config: Optional[RepairConfig] = None,
    ):
        """
        Initialize the generator.

        Args:
            registry: Strategies used for template candidates
            client: Generation client for model-guided candidates, or None
            file_reader: Reads the faulty line that templates rewrite
            config: Source toggles, budget and generation timeout
        """
        self.registry = registry
        self.client = client
        self.file_reader = file_reader
        self.config = config or RepairConfig()

    @property
    def llm_enabled(self) -> bool:
        return self.config.use_llm and self.client is not None

    def generate(
        self,
        fault: Fault,
        code_context: str,
        budget: Optional[int] = None,
        context_hint: Optional[str] = None,
        learned: Optional[str] = None,
        tried: Iterable[tuple[str, str]] = (),
    ) -> list[Patch]:
        """
        Generate up to ``budget`` candidates for ``fault``.

        Args:
            fault: The fault to repair
            code_context: Source text around the fault
            budget: Maximum number of candidates (default: max_candidates)
            context_hint: Extra text appended to the generation prompt
            learned: Strategy id to try first, from the learning store
            tried: patch_key() values of candidates tried before

        Returns:
            Template candidates first, then model-guided ones
        """
        if budget is None:
            budget = self.config.max_candidates

        candidates: list[Patch] = []
        if self.config.use_templates:
            template_budget = budget // 2 if self.llm_enabled else budget
            candidates.extend(self.template_candidates(fault, code_context, template_budget, learned, set(tried)))

        if self.llm_enabled:
            remaining = budget - len(candidates)
            candidates.extend(self.llm_candidates(fault, code_context, remaining, context_hint))

        logger.info("Generated %d candidate(s) for %s", len(candidates), fault.location)
        return candidates

    # -- templates ---------------------------------------------------------

    def template_candidates(
        self,
        fault: Fault,
        code_context: str,
        budget: int,
        learned: Optional[str] = None,
        tried: Optional[set[tuple[str, str]]] = None,
    ) -> list[Patch]:
        if budget <= 0:
            return []

        target_line = self._read_line(fault)
        if target_line is None:
            logger.debug("No source line for %s, skipping templates", fault.location)
            return []

        tried = set(tried or ())
        language = detect_language(fault.location.file)
        patches: list[Patch] = []

        for strategy in self.registry.prioritize(fault, code_context, learned):
            if len(patches) >= budget:
                break
            patch = self._template_patch(strategy, fault, code_context, target_line, language, tried)
            if patch is not None:
                tried.add(patch_key(patch))
                patches.append(patch)
        return patches

    def _template_patch(
        self,
        strategy: Strategy,
        fault: Fault,
        code_context: str,
        target_line: str,
        language: str,
        tried: set[tuple[str, str]],
    ) -> Optional[Patch]:
        match = strategy.match(fault.message) or strategy.match(code_context)
        context = FixContext(fault=fault, code_context=code_context, language=language, target_line=target_line)

        for generator in strategy.fix_generators:
            fix = generator(match, context)
            if not fix:
                continue
            new_text = apply_fix(target_line, fix, language)
            if new_text is None or (strategy.id, new_text) in tried:
                continue

            line = fault.location.start_line
            return Patch(
                fault=fault,
                changes=[PatchChange(
                    file=fault.location.file,
                    start_line=line,
                    end_line=line,
                    original_text=target_line,
                    new_text=new_text,
                )],
                strategy=strategy.id,
                generated_by="template",
                confidence=self.template_confidence(strategy, fault),
                explanation=strategy.description,
            )
        return None

    def template_confidence(self, strategy: Strategy, fault: Fault) -> float:
        rate = self.registry.success_rate(strategy.id)
        confidence = (
            TEMPLATE_BASE_CONFIDENCE
            + SUCCESS_RATE_WEIGHT * rate
            + PRIORITY_WEIGHT * strategy.priority / 10
            + SEVERITY_ADJUSTMENT.get(fault.severity, 0.0)
        )
        return clamp(confidence)

    def _read_line(self, fault: Fault) -> Optional[str]:
        if self.file_reader is None:
            return None
        try:
            content = self.file_reader(fault.location.file)
        except (OSError, UnicodeDecodeError, KeyError):
            return None
        lines = content.splitlines()
        index = fault.location.start_line - 1
        if 0 <= index < len(lines):
            return lines[index]
        return None

    # -- model-guided ------------------------------------------------------

    def llm_candidates(
        self,
        fault: Fault,
        code_context: str,
        count: int,
        context_hint: Optional[str] = None,
    ) -> list[Patch]:
        if not self.llm_enabled or count <= 0:
            return []

        prompt = build_repair_prompt(fault, code_context, context_hint)
        patches = []
        for i in range(count):
            temperature = BASE_TEMPERATURE + i * TEMPERATURE_STEP
            response = self._request(prompt, temperature)
            if response is None:
                continue
            patch = parse_fix_block(response, fault)
            if patch is None:
                logger.debug("No fix found in generation response %d", i + 1)
                continue
            self._fill_original(patch)
            patches.append(patch)
        return patches

    def refine(self, fault: Fault, code_context: str, failed_patches: list[Patch]) -> list[Patch]:
        """Ask for one new candidate that avoids the failures of ``failed_patches``."""
        if not self.llm_enabled or not failed_patches:
            return []

        prompt = build_refinement_prompt(fault, code_context, failed_patches)
        response = self._request(prompt, REFINEMENT_TEMPERATURE)
        if response is None:
            return []

        patch = parse_fix_block(response, fault, strategy=REFINED_STRATEGY)
        if patch is None:
            logger.debug("No fix found in refinement response")
            return []
        patch.generated_by = "refinement"
        self._fill_original(patch)
        logger.info("Refinement produced a new candidate for %s", fault.location)
        return [patch]

    def _request(self, prompt: str, temperature: float) -> Optional[str]:
        history = [ConversationTurn(role="system", content=REPAIR_SYSTEM_PROMPT)]
        try:
            return call_with_timeout(
                self.client, self.config.generation_timeout, GenerationTimeout,
                prompt, history, temperature=temperature,
            )
        except GenerationTimeout as e:
            logger.warning("Generation request abandoned: %s", e)
        except Exception as e:
            logger.warning("Generation request failed: %s", e)
        return None

    def _fill_original(self, patch: Patch) -> None:
        """Record the current text of each changed range when it is missing."""
        if self.file_reader is None:
            return
        for change in patch.changes:
            if change.original_text:
                continue
            try:
                lines = self.file_reader(change.file).splitlines()
            except (OSError, UnicodeDecodeError, KeyError):
                continue
            change.original_text = "\n".join(lines[change.start_line - 1:change.end_line])
