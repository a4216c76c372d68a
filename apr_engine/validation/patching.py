"""
Applying patches to the working tree.

apply_changes() is the pure line-range edit. PatchApplier wraps it with the
snapshot/restore discipline the validation loop relies on: every apply is
paired either with a commit or with a restore of the original content, on
every exit path.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from ..errors import PatchApplyError
from ..models import Patch, PatchChange
from .executors import FileReader, FileWriter

logger = logging.getLogger(__name__)


def _line_ending(content: str) -> str:
    return "\r\n" if "\r\n" in content else "\n"


def apply_changes(content: str, changes: list[PatchChange]) -> str:
    """
    Replace the line ranges named by ``changes`` in ``content``.

    Changes are applied bottom-up so that earlier line numbers stay valid.
    An empty ``new_text`` deletes the range. The file's line ending style
    and trailing newline are preserved.

    Raises:
        PatchApplyError: A range lies outside the file or ranges overlap
    """
    newline = _line_ending(content)
    lines = content.split(newline)
    # A trailing newline leaves an empty last element that is not a line
    trailing = len(lines) > 1 and lines[-1] == ""
    if trailing:
        lines.pop()

    ordered = sorted(changes, key=lambda c: c.start_line, reverse=True)
    floor = None
    for change in ordered:
        if change.start_line < 1 or change.end_line > len(lines) or change.end_line < change.start_line:
            raise PatchApplyError(
                change.file,
                f"lines {change.start_line}-{change.end_line} outside 1-{len(lines)}",
            )
        if floor is not None and change.end_line >= floor:
            raise PatchApplyError(change.file, f"overlapping change at line {change.start_line}")
        floor = change.start_line

        replacement = change.new_text.replace("\r\n", "\n").split("\n") if change.new_text else []
        lines[change.start_line - 1:change.end_line] = replacement

    result = newline.join(lines)
    if trailing:
        result += newline
    return result


class PatchApplier:
    """
    Applies candidate patches through FileReader/FileWriter collaborators.

    Usage:
        applier = PatchApplier(read, write)
        with applier.trial(patch) as trial:
            result = run_tests()
            if result.accepted:
                trial.commit()
        # not committed: every touched file is back to its snapshot
    """

    def __init__(self, file_reader: FileReader, file_writer: FileWriter):
        self.file_reader = file_reader
        self.file_writer = file_writer

    def read(self, path: str) -> str:
        try:
            return self.file_reader(path)
        except (OSError, UnicodeDecodeError, KeyError) as e:
            raise PatchApplyError(path, f"read failed: {e}") from e

    def write(self, path: str, text: str) -> None:
        try:
            self.file_writer(path, text)
        except OSError as e:
            raise PatchApplyError(path, f"write failed: {e}") from e

    @contextmanager
    def trial(self, patch: Patch) -> Iterator["Trial"]:
        """
        Apply ``patch`` for the duration of the block.

        Snapshots every touched file before writing. Unless the block calls
        ``commit()``, the snapshots are written back when the block exits,
        whether it returns or raises. A failure while applying restores the
        files written so far and raises PatchApplyError.
        """
        trial = Trial(patch)
        snapshots: dict[str, str] = {}
        try:
            for file in patch.files:
                original = self.read(file)
                snapshots[file] = original
                changes = [c for c in patch.changes if c.file == file]
                self.write(file, apply_changes(original, changes))
            yield trial
        finally:
            if not trial.committed:
                self._restore(snapshots)

    def _restore(self, snapshots: dict[str, str]) -> None:
        """Write every snapshot back; the first write error is raised after all were tried."""
        first_error = None
        for file, original in snapshots.items():
            try:
                self.file_writer(file, original)
            except Exception as e:
                logger.error("Could not restore %s: %s", file, e)
                if first_error is None:
                    first_error = e
                continue
            logger.debug("Restored %s", file)
        if first_error is not None:
            raise first_error


class Trial:
    """Handle yielded by PatchApplier.trial()."""

    def __init__(self, patch: Patch):
        self.patch = patch
        self.committed = False

    def commit(self) -> None:
        """Keep the patched content when the trial block exits."""
        self.committed = True
