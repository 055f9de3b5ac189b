"""
Comment deduplication for the AI Approver.

A newly generated comment is rejected when it restates a comment already
posted near the same line. The checks run from cheapest and most precise to
fuzziest and stop at the first positive match:

1. exact match of the comment *templates* (identifiers replaced by
   placeholders), so "unused variable `foo`" and "unused variable `bar`"
   count as the same issue;
2. keyword overlap, raw text similarity and template similarity, any one of
   which above its threshold marks the comment as a duplicate.

Only existing comments within ``proximity`` lines of the candidate are
compared. Everything here is pure and never raises.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Set

from .models import CandidateComment, ExistingComment
from .similarity import jaccard_similarity, string_similarity


logger = logging.getLogger(__name__)


COMMON_WORDS = frozenset({
    'the', 'if', 'on', 'in', 'at', 'by', 'for', 'with', 'about', 'against', 'between', 'into',
    'through', 'during', 'before', 'after', 'above', 'below', 'from', 'up', 'down', 'may',
    'will', 'can', 'must', 'should', 'could', 'would', 'might', 'every', 'some', 'other',
    'such', 'only', 'then', 'than', 'when', 'been', 'this', 'that', 'these', 'those',
    'their', 'has', 'have', 'had', 'not', 'and', 'but', 'or', 'as', 'what', 'all',
})

CODE_KEYWORDS = frozenset({
    'function', 'return', 'if', 'else', 'for', 'while', 'break', 'continue',
    'class', 'interface', 'extends', 'implements', 'import', 'export',
    'try', 'catch', 'finally', 'throw', 'async', 'await', 'new', 'this',
    'const', 'let', 'var', 'void', 'null', 'undefined', 'true', 'false',
    'public', 'private', 'protected', 'static', 'final', 'abstract',
    'default', 'delete', 'instanceof', 'typeof', 'yield', 'get', 'set',
    'in', 'of', 'switch', 'case', 'super', 'with',
})

TECHNICAL_TERMS = frozenset({
    'async', 'await', 'sync', 'function', 'method', 'class', 'object',
    'variable', 'const', 'let', 'var', 'import', 'export', 'return',
    'parameter', 'argument', 'callback', 'promise', 'error', 'exception',
    'null', 'undefined', 'boolean', 'string', 'number', 'array', 'json',
    'memory', 'leak', 'performance', 'security', 'vulnerability', 'injection',
    'validation', 'sanitize', 'request', 'response', 'api', 'database',
    'query', 'sql', 'http', 'token', 'authentication', 'authorization',
    'upload', 'download', 'file', 'stream', 'buffer', 'parse', 'serialize',
})

# Substrings that make any word a keyword ("errors", "debugging", "fixes", ...)
RECALL_SUBSTRINGS = ("error", "bug", "fix", "issue")

PLACEHOLDERS = ("{var}", "{Class}", "{snake_var}", "{CONST}", "{method}", "{ENV_VAR}")

# Existing placeholders are matched first so they are never re-substituted
_IDENTIFIER_PATTERN = re.compile(
    "|".join(re.escape(p) for p in PLACEHOLDERS) + r"|\b[a-zA-Z][a-zA-Z0-9_]*\b"
)
_IDENTIFIER_CLASSES = (
    (re.compile(r"^[a-z][a-zA-Z0-9_]*$"), "{var}"),
    (re.compile(r"^[A-Z][a-zA-Z0-9_]*$"), "{Class}"),
    (re.compile(r"^[a-z][a-z0-9_]*_[a-z0-9_]+$"), "{snake_var}"),
    (re.compile(r"^[A-Z][A-Z0-9_]*$"), "{CONST}"),
)
_ENV_VAR_PATTERN = re.compile(r"(json\.loads on `?)([A-Z][A-Z0-9_]*)")
_METHOD_CALL_PATTERN = re.compile(r"(\.\s*)([a-zA-Z][a-zA-Z0-9_]*)(\s*\()")

_CODE_ELEMENT_PATTERN = re.compile(
    r"`[^`]+`"
    r"|\b[a-zA-Z0-9_]+\(\)"
    r"|\b[A-Z][a-zA-Z0-9_]+"
    r"|[a-z][a-zA-Z0-9_]+\.[a-z][a-zA-Z0-9_]+"
)
_WORD_SPLIT_PATTERN = re.compile(r"\W+")


def is_common_word(word: str) -> bool:
    return word.lower() in COMMON_WORDS


def is_code_keyword(word: str) -> bool:
    return word.lower() in CODE_KEYWORDS


def is_code_related_term(word: str) -> bool:
    """Technical vocabulary, or any word containing a recall substring."""
    return word in TECHNICAL_TERMS or any(part in word for part in RECALL_SUBSTRINGS)


def _classify_identifier(match: re.Match) -> str:
    token = match.group(0)
    if token in PLACEHOLDERS or is_common_word(token) or is_code_keyword(token):
        return token
    # First matching class wins; the order is part of the dedup behaviour
    for pattern, placeholder in _IDENTIFIER_CLASSES:
        if pattern.match(token):
            return placeholder
    return token


def templatize(body: str) -> str:
    """Replace identifier-like tokens of a comment with category placeholders.

    The ``json.loads on ENV_VAR`` rule runs on the raw text, before the
    identifier pass would rewrite ``json`` and ``loads``. The method-call rule
    runs last and therefore only rewrites method names the identifier pass
    kept (common words and keywords such as ``.get(``). Applying the function
    to its own output returns it unchanged.
    """
    if not isinstance(body, str) or not body:
        return ""
    template = _ENV_VAR_PATTERN.sub(r"\1{ENV_VAR}", body)
    template = _IDENTIFIER_PATTERN.sub(_classify_identifier, template)
    template = _METHOD_CALL_PATTERN.sub(r"\1{method}\3", template)
    return template


def extract_keywords(body: str) -> Set[str]:
    """Extract lowercase code references and technical terms from a comment."""
    if not isinstance(body, str) or not body:
        return set()

    code_elements = {
        element.replace("`", "").lower()
        for element in _CODE_ELEMENT_PATTERN.findall(body)
    }
    words = [word for word in _WORD_SPLIT_PATTERN.split(body.lower()) if len(word) > 3]
    technical_terms = {word for word in words if is_code_related_term(word)}
    return code_elements | technical_terms


@dataclass(frozen=True)
class DedupThresholds:
    """Tuning parameters for duplicate detection.

    A score must be strictly greater than its threshold to count.
    """
    keyword_overlap: float = 0.5
    text_similarity: float = 0.6
    template_similarity: float = 0.85
    proximity: int = 5


@dataclass(frozen=True)
class SimilarityScores:
    keyword_overlap: float
    text_similarity: float
    template_similarity: float

    def exceeds(self, thresholds: DedupThresholds) -> bool:
        return (
            self.keyword_overlap > thresholds.keyword_overlap
            or self.text_similarity > thresholds.text_similarity
            or self.template_similarity > thresholds.template_similarity
        )

    def is_notable(self) -> bool:
        """Scores worth logging even when they do not mark a duplicate."""
        return self.keyword_overlap > 0.3 or self.text_similarity > 0.5 or self.template_similarity > 0.8

    def __str__(self) -> str:
        return (f"keyword overlap {self.keyword_overlap:.2f}, "
                f"text similarity {self.text_similarity:.2f}, "
                f"template similarity {self.template_similarity:.2f}")


@dataclass(frozen=True)
class DuplicateMatch:
    """Why a candidate was rejected."""
    existing: ExistingComment
    reason: str
    scores: Optional[SimilarityScores] = None


class CommentDeduplicator:
    """Decides whether a candidate comment repeats an existing one."""

    def __init__(self, thresholds: Optional[DedupThresholds] = None):
        self.thresholds = thresholds or DedupThresholds()

    def find_duplicate(
        self,
        candidate: CandidateComment,
        existing: Iterable[ExistingComment],
        proximity: Optional[int] = None,
    ) -> Optional[DuplicateMatch]:
        """Return the first existing comment the candidate duplicates, if any."""
        if proximity is None:
            proximity = self.thresholds.proximity

        candidate_template = templatize(candidate.body)
        candidate_keywords = None

        for comment in existing or ():
            if not self._is_nearby(candidate, comment, proximity):
                continue

            existing_template = templatize(comment.body)
            if existing_template == candidate_template:
                logger.info(f"Skipping duplicate comment on line {candidate.line} "
                            f"(template match with comment on line {comment.line})")
                return DuplicateMatch(existing=comment, reason="template")

            if candidate_keywords is None:
                candidate_keywords = extract_keywords(candidate.body)

            scores = SimilarityScores(
                keyword_overlap=jaccard_similarity(candidate_keywords, extract_keywords(comment.body)),
                text_similarity=string_similarity(candidate.body, comment.body),
                template_similarity=string_similarity(candidate_template, existing_template),
            )
            if scores.is_notable():
                logger.debug(f"Similarity for comment on line {candidate.line} vs {comment.line}: {scores}")

            if scores.exceeds(self.thresholds):
                logger.info(f"Skipping duplicate comment on line {candidate.line} "
                            f"(similar to comment on line {comment.line}: {scores})")
                return DuplicateMatch(existing=comment, reason="similarity", scores=scores)

        return None

    def is_duplicate(
        self,
        candidate: CandidateComment,
        existing: Iterable[ExistingComment],
        proximity: Optional[int] = None,
    ) -> bool:
        return self.find_duplicate(candidate, existing, proximity) is not None

    @staticmethod
    def _is_nearby(candidate: CandidateComment, comment: ExistingComment, proximity: int) -> bool:
        if not isinstance(candidate.line, int) or not isinstance(comment.line, int):
            return False
        return abs(comment.line - candidate.line) <= proximity


def is_duplicate(
    candidate: CandidateComment,
    existing: Sequence[ExistingComment],
    proximity: int = 5,
) -> bool:
    """Check a candidate against existing comments with the default thresholds."""
    return CommentDeduplicator().is_duplicate(candidate, existing, proximity)
