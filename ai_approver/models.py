"""
Data models for the AI Approver.

This module contains the dataclasses and enums shared by the diff mapper,
the comment deduplicator, the model adapters and the GitHub client.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Optional


class Severity(Enum):
    """Severity reported by the model for a candidate comment."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Any) -> Optional['Severity']:
        """Parse a severity value, returning None for anything unrecognised."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def rank(self) -> int:
        """Sort rank, lower is more severe."""
        return {"high": 0, "medium": 1, "low": 2}[self.value]


UNKNOWN_SEVERITY_RANK = 3


class LineKind(Enum):
    """Kind of a line inside a diff hunk."""
    ADDED = "added"
    REMOVED = "removed"
    CONTEXT = "context"


@dataclass(frozen=True)
class DiffLine:
    """A single tagged line of a hunk."""
    kind: LineKind
    content: str
    new_line: Optional[int] = None


@dataclass(frozen=True)
class DiffHunk:
    """One hunk of a unified diff."""
    source_start: int
    source_length: int
    target_start: int
    target_length: int
    header: str
    lines: tuple = ()

    @property
    def commentable_lines(self) -> List[int]:
        return [line.new_line for line in self.lines if line.new_line is not None]

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if line.kind == LineKind.ADDED)

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.kind == LineKind.REMOVED)


@dataclass(frozen=True)
class UnifiedDiff:
    """Parsed unified diff for a single file."""
    hunks: tuple = ()

    @property
    def commentable_lines(self) -> List[int]:
        """Commentable new-file lines, hunks concatenated in file order."""
        lines: List[int] = []
        for hunk in self.hunks:
            lines.extend(hunk.commentable_lines)
        return lines

    @property
    def additions(self) -> int:
        return sum(hunk.additions for hunk in self.hunks)

    @property
    def deletions(self) -> int:
        return sum(hunk.deletions for hunk in self.hunks)

    @property
    def is_empty(self) -> bool:
        return not self.hunks


@dataclass
class CandidateComment:
    """A review comment proposed by a model adapter (untrusted)."""
    line: int
    body: str
    severity: Optional[Severity] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional['CandidateComment']:
        """Build a candidate from a raw model item, or None if it is unusable.

        A usable item has a positive integer ``line`` and a non-empty ``body``.
        Booleans are rejected even though they are ints in Python.
        """
        if not isinstance(data, dict):
            return None
        line = data.get("line")
        body = data.get("body")
        if isinstance(line, bool) or not isinstance(line, int) or line <= 0:
            return None
        if not isinstance(body, str) or not body.strip():
            return None
        return cls(line=line, body=body.strip(), severity=Severity.parse(data.get("severity")))

    @property
    def severity_rank(self) -> int:
        return self.severity.rank if self.severity else UNKNOWN_SEVERITY_RANK


@dataclass(frozen=True)
class ExistingComment:
    """A review comment already present on the pull request."""
    id: Optional[int]
    line: Optional[int]
    body: str
    author: str = ""

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'ExistingComment':
        """Build from a GitHub review-comment payload.

        Outdated comments have ``line`` set to null; ``original_line`` is used
        instead so they still take part in deduplication.
        """
        user = payload.get("user") or {}
        line = payload.get("line") or payload.get("original_line")
        return cls(
            id=payload.get("id"),
            line=line,
            body=payload.get("body") or "",
            author=user.get("login", "") if isinstance(user, dict) else "",
        )


@dataclass
class PRDetails:
    """Pull request details."""
    owner: str
    repo: str
    pull_number: int
    title: str = ""
    description: str = ""
    head_sha: Optional[str] = None
    base_sha: Optional[str] = None

    @property
    def repo_full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class PRFile:
    """A file changed by the pull request, as reported by the files API."""
    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    sha: Optional[str] = None
    patch: Optional[str] = None
    binary: bool = False

    @property
    def is_removed(self) -> bool:
        return self.status == "removed"

    @property
    def is_binary(self) -> bool:
        # Set from the file extension when the file list is fetched
        return self.binary


@dataclass
class ReviewComment:
    """A comment ready to be posted as part of a review."""
    path: str
    body: str
    line: int
    side: str = "RIGHT"

    def to_github_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "body": self.body,
            "line": self.line,
            "side": self.side,
        }


@dataclass
class SkippedFile:
    """A file left out of the review, with the reason shown in the summary."""
    filename: str
    reason: str


@dataclass
class ProcessingStats:
    """Counters collected during one review pass."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    files_processed: int = 0
    files_skipped: int = 0
    comments_generated: int = 0
    comments_posted: int = 0
    comments_on_invalid_lines: int = 0
    duplicate_comments: int = 0
    errors_encountered: int = 0

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time


@dataclass
class ReviewResult:
    """Outcome of reviewing a pull request."""
    pr_details: PRDetails
    reviewed_files: int = 0
    skipped_files: List[SkippedFile] = field(default_factory=list)
    comments: List[ReviewComment] = field(default_factory=list)
    comments_on_invalid_lines: int = 0
    duplicate_comments: int = 0
    errors: List[str] = field(default_factory=list)
    processing_time: float = 0.0

    @property
    def total_comments(self) -> int:
        return len(self.comments)

    @property
    def succeeded(self) -> bool:
        return not self.errors
