"""
The validation state machine.

    LOCALIZED -> CANDIDATES_GENERATED -> VALIDATING -> SUCCESS | EXHAUSTED

Candidates are tried in pool order. Each one is applied, tested and rolled
back unless it is accepted; the first accepted candidate stays applied and
ends the run. Between rounds the generator may append refined candidates.
"""

import logging
import time
from typing import Optional

from .. import errors, events
from ..config import RepairConfig
from ..events import RepairEvents
from ..learning import LearningStore
from ..models import Fault, Patch, RepairResult, RepairState
from ..repair.candidates import CandidateGenerator
from .validator import CandidateValidator

logger = logging.getLogger(__name__)


class ValidationLoop:
    """
    Drives candidates for one fault to success or exhaustion.

    Usage:
        validator = CandidateValidator(config, test_executor, read, write)
        loop = ValidationLoop(config, generator, validator, learning)
        result = loop.run(fault, candidates, code_context)
    """

    def __init__(
        self,
        config: RepairConfig,
        generator: CandidateGenerator,
        validator: CandidateValidator,
        learning: Optional[LearningStore] = None,
        event_bus: Optional[RepairEvents] = None,
    ):
        self.config = config
        self.generator = generator
        self.validator = validator
        self.registry = generator.registry
        self.learning = learning
        self.events = event_bus or RepairEvents()

    def run(self, fault: Fault, candidates: list[Patch], code_context: str = "") -> RepairResult:
        """
        Validate ``candidates`` for ``fault``.

        The list is used as the pool: refinement candidates are appended to
        it and it becomes ``RepairResult.all_patches``.
        """
        start = time.monotonic()
        pool = candidates
        result = RepairResult(
            fault=fault,
            candidates_generated=len(pool),
            all_patches=pool,
            state=RepairState.CANDIDATES_GENERATED,
        )

        if not pool:
            return self._exhausted(result, errors.NO_CANDIDATES, start)

        for iteration in range(self.config.max_iterations):
            result.iterations += 1
            result.state = RepairState.VALIDATING

            for patch in list(pool):
                if patch.validated:
                    continue

                result.candidates_tested += 1
                self.events.emit(events.CANDIDATE, patch=patch, iteration=iteration)
                outcome = self.validator.validate(patch)
                self.events.emit(events.VALIDATION, patch=patch, result=outcome)

                if outcome.accepted:
                    self._record_success(fault, patch, pool, code_context)
                    result.success = True
                    result.applied_patch = patch
                    result.state = RepairState.SUCCESS
                    result.duration = time.monotonic() - start
                    logger.info("Accepted %s candidate for %s", patch.strategy, fault.location)
                    self.events.emit(events.SUCCESS, result=result)
                    return result

                logger.debug("Rejected %s candidate: %s", patch.strategy, outcome)
                self._record_failure(fault, patch)

            if iteration < self.config.max_iterations - 1:
                failed = [p for p in pool if p.validated and not (p.test_results and p.test_results.accepted)]
                refined = self.generator.refine(fault, code_context, failed)
                pool.extend(refined)
                result.candidates_generated += len(refined)
                if all(p.validated for p in pool):
                    logger.debug("No candidates left for %s after round %d", fault.location, iteration + 1)
                    break

        return self._exhausted(result, errors.ITERATIONS_EXHAUSTED, start)

    def _exhausted(self, result: RepairResult, reason: str, start: float) -> RepairResult:
        result.reason = reason
        result.state = RepairState.EXHAUSTED
        result.duration = time.monotonic() - start
        logger.info("No fix for %s: %s", result.fault.location, reason)
        self.events.emit(events.FAILURE, result=result)
        return result

    def _record_success(self, fault: Fault, patch: Patch, pool: list[Patch], code_context: str) -> None:
        if patch.generated_by == "template":
            self.registry.record_result(patch.strategy, True)
        if self.config.learning_enabled and self.learning is not None:
            failed = [p for p in pool if p is not patch and p.validated]
            self.learning.record_success(fault, patch, failed, code_context)

    def _record_failure(self, fault: Fault, patch: Patch) -> None:
        if patch.generated_by == "template":
            self.registry.record_result(patch.strategy, False)
        if self.config.learning_enabled and self.learning is not None:
            self.learning.record_failure(fault, patch)
