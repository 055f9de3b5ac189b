"""
Comment processor for the AI Approver.

Turns untrusted model candidates into review comments that can be posted:
candidates on lines outside the diff are dropped, then candidates that repeat
an existing comment, and the survivors are formatted.
"""

import logging
from typing import List, Iterable, Optional, Tuple

from .config import ReviewConfig
from .deduplicator import CommentDeduplicator
from .models import CandidateComment, ExistingComment, ReviewComment, SkippedFile
from .utils import truncate

logger = logging.getLogger(__name__)

SUMMARY_HEADING = "## AI Code Review Summary"


def sort_by_severity(candidates: Iterable[CandidateComment]) -> List[CandidateComment]:
    """Stable sort: high, medium, low, then comments without a severity."""
    return sorted(candidates, key=lambda candidate: candidate.severity_rank)


class CommentProcessor:
    """Filters, deduplicates and formats review comments for one file."""

    def __init__(self, review_config: ReviewConfig, deduplicator: Optional[CommentDeduplicator] = None):
        self.review_config = review_config
        self.deduplicator = deduplicator or CommentDeduplicator()

    def filter_placeable(
        self,
        candidates: Iterable[CandidateComment],
        commentable_lines: Iterable[int],
        path: str,
    ) -> Tuple[List[CandidateComment], int]:
        """Keep candidates whose line is a commentable line of the diff.

        Returns:
            Tuple of (kept candidates, number dropped)
        """
        allowed = set(commentable_lines)
        kept = []
        dropped = 0
        for candidate in candidates:
            if candidate.line in allowed:
                kept.append(candidate)
            else:
                logger.info(f"Ignoring comment for invalid line {candidate.line} in {path}")
                dropped += 1
        return kept, dropped

    def drop_duplicates(
        self,
        candidates: Iterable[CandidateComment],
        existing: List[ExistingComment],
    ) -> Tuple[List[CandidateComment], int]:
        """Drop candidates that repeat an already-posted comment.

        Only comments already on the pull request are compared against;
        candidates accepted in this pass do not join the pool.

        Returns:
            Tuple of (kept candidates, number dropped)
        """
        kept = []
        dropped = 0
        for candidate in candidates:
            if self.deduplicator.is_duplicate(candidate, existing):
                dropped += 1
            else:
                kept.append(candidate)
        return kept, dropped

    def process(
        self,
        candidates: Iterable[CandidateComment],
        commentable_lines: Iterable[int],
        existing: List[ExistingComment],
        path: str,
    ) -> List[ReviewComment]:
        """Run placement filtering, deduplication and formatting for one file."""
        return self.process_with_counts(candidates, commentable_lines, existing, path)[0]

    def process_with_counts(
        self,
        candidates: Iterable[CandidateComment],
        commentable_lines: Iterable[int],
        existing: List[ExistingComment],
        path: str,
    ) -> Tuple[List[ReviewComment], int, int]:
        """Like :meth:`process`, also returning the invalid-line and duplicate counts."""
        placeable, invalid = self.filter_placeable(candidates, commentable_lines, path)
        unique, duplicates = self.drop_duplicates(placeable, existing)

        comments = [
            ReviewComment(path=path, body=self.format_comment(candidate.body), line=candidate.line)
            for candidate in unique
        ]
        if not comments:
            logger.info(f"No valid review comments for {path}")
        return comments, invalid, duplicates

    def format_comment(self, body: str) -> str:
        prefix = self.review_config.comment_prefix
        text = f"{prefix} {body}" if prefix else body
        if self.review_config.max_comment_length:
            text = truncate(text, self.review_config.max_comment_length)
        return text

    def format_summary_comment(self, summary: str) -> str:
        parts = [f"{SUMMARY_HEADING}\n\n"]
        if self.review_config.summary_header:
            parts.append(f"{self.review_config.summary_header}\n\n")
        parts.append(summary)
        if self.review_config.summary_footer:
            parts.append(f"\n\n{self.review_config.summary_footer}")
        return "".join(parts)

    def format_skipped_files_summary(self, reviewed_files: int, skipped_files: List[SkippedFile]) -> str:
        """Report the files that were left out of the review because of their size."""
        lines = [
            SUMMARY_HEADING,
            "",
            f"**Files reviewed:** {reviewed_files}",
            f"**Files skipped:** {len(skipped_files)}",
            "",
            "### Skipped Files",
            f"The following files were too large for AI review (>{self.review_config.max_diff_lines} lines of changes):",
        ]
        lines.extend(f"- `{skipped.filename}`: {skipped.reason}" for skipped in skipped_files)
        return "\n".join(lines)
