"""
Shared utility functions for the AI Approver.

File filtering, language detection for code fences and text sanitising used
across the GitHub client, the model adapters and the orchestrator.
"""

import logging
import re
from typing import Iterable, Set


logger = logging.getLogger(__name__)


def matches_pattern(file_path: str, pattern: str) -> bool:
    """Check if a file path matches a regular-expression filter.

    Filters are searched anywhere in the path (``re.search``). An invalid
    expression never matches and is logged.

    Args:
        file_path: The file path to check
        pattern: Regular expression to search for

    Returns:
        True if the pattern is found in the path, False otherwise
    """
    try:
        return re.search(pattern, file_path) is not None
    except re.error as e:
        logger.warning(f"Invalid file filter pattern {pattern!r}: {e}")
        return False


def matches_any(file_path: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(file_path, pattern) for pattern in patterns)


def is_binary_file(file_path: str) -> bool:
    """Check if the file is likely binary based on extension."""
    binary_extensions: Set[str] = {
        '.png', '.jpg', '.jpeg', '.gif', '.pdf', '.zip',
        '.tar', '.gz', '.exe', '.dll', '.so', '.dylib',
        '.bin', '.dat', '.pyc', '.pyo', '.class', '.ico', '.woff', '.woff2'
    }
    return any(file_path.lower().endswith(ext) for ext in binary_extensions)


def get_file_extension(file_path: str) -> str:
    """Lowercase extension without the dot, or an empty string."""
    name = file_path.rsplit('/', 1)[-1]
    if '.' not in name:
        return ''
    return name.rsplit('.', 1)[-1].lower()


def get_file_language(file_path: str) -> str:
    """Detect programming language from file extension.

    Returns:
        The detected language name or 'unknown'
    """
    language_map = {
        'py': 'python',
        'js': 'javascript',
        'mjs': 'javascript',
        'ts': 'typescript',
        'jsx': 'javascript',
        'tsx': 'typescript',
        'java': 'java',
        'kt': 'kotlin',
        'go': 'go',
        'rs': 'rust',
        'cpp': 'c++',
        'cc': 'c++',
        'c': 'c',
        'h': 'c',
        'hpp': 'c++',
        'cs': 'c#',
        'rb': 'ruby',
        'php': 'php',
        'swift': 'swift',
        'scala': 'scala',
        'sql': 'sql',
        'sh': 'shell',
        'yaml': 'yaml',
        'yml': 'yaml',
        'json': 'json',
        'html': 'html',
        'css': 'css',
        'vue': 'vue',
    }
    return language_map.get(get_file_extension(file_path), 'unknown')


def sanitize_text(text: str) -> str:
    """Remove control characters and collapse runs of blank lines."""
    if not text:
        return ""

    text = ''.join(char for char in text if ord(char) >= 32 or char in '\n\t')
    text = re.sub(r'\n{4,}', '\n\n\n', text)

    return text.strip()


def sanitize_code_content(content: str) -> str:
    """Only strip null bytes from code so formatting is preserved."""
    if not content:
        return ""
    return content.replace('\x00', '')


def truncate(text: str, limit: int, marker: str = "...[truncated]") -> str:
    if not text or len(text) <= limit:
        return text or ""
    return text[:limit] + marker
