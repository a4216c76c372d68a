"""Exceptions and failure reasons used across the repair pipeline."""


class RepairError(Exception):
    """Base class for repair pipeline errors."""


class PatchApplyError(RepairError):
    """A candidate could not be written to the working tree."""

    def __init__(self, file: str, message: str):
        super().__init__(f"Failed to apply patch to {file}: {message}")
        self.file = file


class CollaboratorTimeout(RepairError):
    """A host collaborator did not answer within its configured bound."""

    label = "timeout"

    def __init__(self, seconds: float):
        super().__init__(f"{self.label} after {seconds:g}s")
        self.seconds = seconds


class TestTimeout(CollaboratorTimeout):
    __test__ = False  # keep pytest from collecting this class
    label = "Test timeout"


class GenerationTimeout(CollaboratorTimeout):
    label = "generation timeout"


# Reasons attached to failed RepairResult records
NO_CANDIDATES = "No repair candidates generated"
ITERATIONS_EXHAUSTED = "No valid patch found after all iterations"
NO_FILE_ACCESS = "No file reader/writer configured to apply patches"
CANCELLED = "Session cancelled before this fault was processed"
NO_CHAT_LOCATION = "Could not locate the code to repair in the file"
