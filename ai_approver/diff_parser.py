"""
Unified diff parsing for the AI Approver.

The GitHub review-comment API only accepts lines on the right-hand side of a
diff, i.e. lines that exist in the new version of the file. This module maps a
single file's patch onto those commentable new-file line numbers.
"""

import logging
import re
from typing import List, Dict, Any, Optional

from unidiff import PatchSet, UnidiffParseError

from .models import DiffHunk, DiffLine, LineKind, UnifiedDiff


logger = logging.getLogger(__name__)

HUNK_HEADER_PATTERN = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")
_FULL_HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


def _split_lines(diff_text: Any) -> List[str]:
    if not diff_text or not isinstance(diff_text, str):
        return []
    return diff_text.split("\n")


def compute_commentable_lines(diff_text: str) -> List[int]:
    """Return the new-file line numbers that may carry a review comment.

    Added and context lines are commentable; removed lines do not exist in the
    new file and do not advance the cursor. Anything before the first valid
    hunk header is ignored, and a malformed ``@@`` header unsets the cursor
    until the next valid one. Never raises.
    """
    commentable: List[int] = []
    current_line: Optional[int] = None

    for line in _split_lines(diff_text):
        if line.startswith("@@"):
            match = HUNK_HEADER_PATTERN.match(line)
            current_line = int(match.group(1)) if match else None
            continue

        if current_line is None:
            continue

        if line.startswith("+") or line.startswith(" "):
            commentable.append(current_line)
            current_line += 1

    return commentable


def _with_file_headers(diff_text: str, filename: str) -> str:
    # Files-API patches start at the first hunk and carry no file headers
    if diff_text.startswith("@@"):
        return f"--- a/{filename}\n+++ b/{filename}\n{diff_text}"
    return diff_text


def _slice_file_section(full_diff: str, filename: str) -> str:
    collected: List[str] = []
    in_target = False
    for line in full_diff.split("\n"):
        if line.startswith("diff --git"):
            if in_target:
                break
            in_target = line.endswith(f" b/{filename}")
        if in_target:
            collected.append(line)
    return "\n".join(collected)


class DiffParser:
    """Parses per-file unified diffs into hunks and tracks parsing statistics.

    Patches are read with ``unidiff``. When it rejects a patch (hunk counts
    that do not add up are common in hand-edited diffs) the cursor scan used by
    :func:`compute_commentable_lines` is applied instead.
    """

    def __init__(self):
        self._parsed_diffs = 0
        self._parsed_hunks = 0
        self._malformed_headers = 0
        self._manual_fallbacks = 0

    def parse(self, diff_text: str, filename: str = "file") -> UnifiedDiff:
        """Parse a single file's patch into a :class:`UnifiedDiff`.

        ``diff_text`` may be a files-API patch (starting at the first ``@@``
        header) or a ``git diff`` section with its file headers.
        """
        lines = _split_lines(diff_text)
        self._malformed_headers += sum(
            1 for line in lines if line.startswith("@@") and not _FULL_HUNK_HEADER_PATTERN.match(line)
        )

        hunks: List[DiffHunk] = []
        if lines:
            try:
                patch_set = PatchSet(_with_file_headers(diff_text, filename).splitlines(keepends=True))
                for patched_file in patch_set:
                    hunks.extend(self._convert_patched_file(patched_file))
            except UnidiffParseError as e:
                logger.debug(f"unidiff could not parse patch for {filename}, using manual parsing: {e}")
                self._manual_fallbacks += 1
                hunks = self._parse_manually(lines)

        self._parsed_diffs += 1
        self._parsed_hunks += len(hunks)
        return UnifiedDiff(hunks=tuple(hunks))

    @staticmethod
    def _convert_patched_file(patched_file) -> List[DiffHunk]:
        hunks = []
        for hunk in patched_file:
            header = f"@@ -{hunk.source_start},{hunk.source_length} +{hunk.target_start},{hunk.target_length} @@"
            if hunk.section_header:
                header += f" {hunk.section_header}"

            lines = []
            for line in hunk:
                content = line.value.rstrip("\n")
                if line.is_added:
                    lines.append(DiffLine(LineKind.ADDED, content, line.target_line_no))
                elif line.is_removed:
                    lines.append(DiffLine(LineKind.REMOVED, content, None))
                elif line.is_context:
                    lines.append(DiffLine(LineKind.CONTEXT, content, line.target_line_no))

            hunks.append(DiffHunk(
                hunk.source_start,
                hunk.source_length,
                hunk.target_start,
                hunk.target_length,
                header,
                lines=tuple(lines),
            ))
        return hunks

    @staticmethod
    def _parse_manually(raw_lines: List[str]) -> List[DiffHunk]:
        """Cursor scan with the same rules as :func:`compute_commentable_lines`."""
        hunks: List[DiffHunk] = []
        header: Optional[tuple] = None
        lines: List[DiffLine] = []
        current_line: Optional[int] = None

        def close_hunk():
            if header is not None:
                hunks.append(DiffHunk(*header, lines=tuple(lines)))

        for raw in raw_lines:
            if raw.startswith("@@"):
                close_hunk()
                lines = []
                match = _FULL_HUNK_HEADER_PATTERN.match(raw)
                if not match:
                    logger.debug(f"Ignoring malformed hunk header: {raw[:80]}")
                    header = None
                    current_line = None
                    continue
                source_start, source_length, target_start, target_length = match.groups()
                header = (
                    int(source_start),
                    int(source_length) if source_length is not None else 1,
                    int(target_start),
                    int(target_length) if target_length is not None else 1,
                    raw,
                )
                current_line = int(target_start)
                continue

            if current_line is None:
                continue

            if raw.startswith("+"):
                lines.append(DiffLine(LineKind.ADDED, raw[1:], current_line))
                current_line += 1
            elif raw.startswith(" "):
                lines.append(DiffLine(LineKind.CONTEXT, raw[1:], current_line))
                current_line += 1
            elif raw.startswith("-"):
                lines.append(DiffLine(LineKind.REMOVED, raw[1:], None))

        close_hunk()
        return hunks

    @staticmethod
    def extract_file_patch(full_diff: str, filename: str) -> str:
        """Return one file's section of a multi-file ``git diff`` output.

        The file is matched on its exact path; renamed files also match on
        their new name. Returns an empty string if absent.
        """
        if not full_diff or not filename:
            return ""

        try:
            patch_set = PatchSet(full_diff.splitlines(keepends=True))
        except UnidiffParseError as e:
            logger.debug(f"unidiff could not parse PR diff, slicing {filename} manually: {e}")
            return _slice_file_section(full_diff, filename)

        for patched_file in patch_set:
            if patched_file.path == filename or patched_file.target_file == f"b/{filename}":
                return str(patched_file)
        return ""

    @staticmethod
    def count_lines(diff_text: str) -> int:
        """Number of lines in a patch, as used by the size guard."""
        if not diff_text:
            return 0
        return len(diff_text.split("\n"))

    def get_parsing_statistics(self) -> Dict[str, Any]:
        return {
            "parsed_diffs": self._parsed_diffs,
            "parsed_hunks": self._parsed_hunks,
            "malformed_headers": self._malformed_headers,
            "manual_fallbacks": self._manual_fallbacks,
        }
