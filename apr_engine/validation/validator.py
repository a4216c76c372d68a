"""
Validation of a single candidate patch.

CandidateValidator applies a patch, runs the test executor against the
patched tree and rolls the change back unless it was accepted. It is shared
by the validation loop and the conversational repairer.
"""

import logging
import time
from typing import Optional

from .. import errors, events
from ..config import RepairConfig
from ..errors import PatchApplyError, TestTimeout
from ..events import RepairEvents
from ..models import Patch, ValidationResult
from .executors import FileReader, FileWriter, TestExecutor, call_with_timeout
from .patching import PatchApplier

logger = logging.getLogger(__name__)


class CandidateValidator:
    """
    Apply -> test -> commit or restore, for one candidate at a time.

    Without test validation (disabled, or no test executor configured) a
    candidate is accepted as soon as it applies cleanly.
    """

    def __init__(
        self,
        config: RepairConfig,
        test_executor: Optional[TestExecutor] = None,
        file_reader: Optional[FileReader] = None,
        file_writer: Optional[FileWriter] = None,
        event_bus: Optional[RepairEvents] = None,
    ):
        self.config = config
        self.test_executor = test_executor
        self.events = event_bus or RepairEvents()
        self.applier: Optional[PatchApplier] = None
        if file_reader is not None and file_writer is not None:
            self.applier = PatchApplier(file_reader, file_writer)

    @property
    def runs_tests(self) -> bool:
        return self.config.validate_with_tests and self.test_executor is not None

    def validate(self, patch: Patch) -> ValidationResult:
        """
        Validate ``patch``, mark it validated and attach the result.

        An accepted candidate is left applied; any other outcome leaves the
        touched files byte-identical to their content before the call.
        """
        if not self.runs_tests:
            outcome = self._accept_untested(patch)
        elif self.applier is None:
            outcome = ValidationResult.failure(errors.NO_FILE_ACCESS, compiled=False)
        else:
            outcome = self._apply_and_test(patch)

        patch.validated = True
        patch.test_results = outcome
        return outcome

    def _apply_and_test(self, patch: Patch) -> ValidationResult:
        start = time.monotonic()
        try:
            with self.applier.trial(patch) as trial:
                outcome = self._run_tests()
                if outcome.accepted:
                    trial.commit()
        except PatchApplyError as e:
            logger.warning("%s", e)
            return ValidationResult.failure(str(e), compiled=False, duration=time.monotonic() - start)

        if not outcome.accepted:
            self.events.emit(events.ROLLBACK, patch=patch, files=patch.files)
        return outcome

    def _run_tests(self) -> ValidationResult:
        start = time.monotonic()
        try:
            return call_with_timeout(self.test_executor, self.config.test_timeout, TestTimeout)
        except TestTimeout as e:
            logger.warning("%s", e)
            return ValidationResult.failure(TestTimeout.label, compiled=False, duration=time.monotonic() - start)
        except Exception as e:
            logger.warning("Test executor raised: %s", e, exc_info=True)
            return ValidationResult.failure(str(e) or type(e).__name__, duration=time.monotonic() - start)

    def _accept_untested(self, patch: Patch) -> ValidationResult:
        if self.applier is not None:
            try:
                with self.applier.trial(patch) as trial:
                    trial.commit()
            except PatchApplyError as e:
                logger.warning("%s", e)
                return ValidationResult.failure(str(e), compiled=False)
        else:
            logger.warning("No file reader/writer configured, %s accepted without applying", patch.id)
        return ValidationResult(success=True)
