"""
Plain-text similarity measures used by the comment deduplicator.

All functions are total: non-string input is treated as an empty string and
empty input yields the natural boundary value instead of raising.
"""

import re
from typing import Any, Iterable, List


# Length difference above which edit distance is replaced by word overlap
LENGTH_DIFFERENCE_LIMIT = 20

_PUNCTUATION_PATTERN = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def normalize_text(text: str) -> str:
    """Lowercase and replace common punctuation with spaces."""
    return _PUNCTUATION_PATTERN.sub(" ", _as_text(text).lower()).strip()


def levenshtein_distance(first: str, second: str) -> int:
    """Minimum number of single-character insertions, deletions and substitutions."""
    first, second = _as_text(first), _as_text(second)
    if len(first) < len(second):
        first, second = second, first
    if not second:
        return len(first)

    previous = list(range(len(second) + 1))
    for i, first_char in enumerate(first, start=1):
        current = [i]
        for j, second_char in enumerate(second, start=1):
            cost = 0 if first_char == second_char else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def _significant_words(text: str) -> List[str]:
    return [word for word in text.split() if len(word) > 2]


def word_based_similarity(first: str, second: str) -> float:
    """Dice coefficient over the distinct words longer than two characters."""
    first_words = set(_significant_words(_as_text(first)))
    second_words = set(_significant_words(_as_text(second)))
    if not first_words or not second_words:
        return 0.0
    shared = first_words & second_words
    return (2 * len(shared)) / (len(first_words) + len(second_words))


def string_similarity(first: str, second: str) -> float:
    """Similarity in [0, 1] between two comment bodies.

    Uses ``1 - distance / max_length`` when the normalised strings have
    similar lengths and falls back to :func:`word_based_similarity` when they
    differ by more than ``LENGTH_DIFFERENCE_LIMIT`` characters.
    """
    normalized_first = normalize_text(first)
    normalized_second = normalize_text(second)

    if abs(len(normalized_first) - len(normalized_second)) > LENGTH_DIFFERENCE_LIMIT:
        return word_based_similarity(normalized_first, normalized_second)

    max_length = max(len(normalized_first), len(normalized_second))
    if max_length == 0:
        return 1.0
    distance = levenshtein_distance(normalized_first, normalized_second)
    return 1 - (distance / max_length)


def jaccard_similarity(first: Iterable[str], second: Iterable[str]) -> float:
    """Intersection over union; 0 when either collection is empty."""
    first_set, second_set = set(first or ()), set(second or ())
    if not first_set or not second_set:
        return 0.0
    return len(first_set & second_set) / len(first_set | second_set)
