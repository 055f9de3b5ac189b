"""
Pytest configuration and fixtures for ai_approver tests.
"""

import pytest
import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture
def sample_patch():
    """Provide a single-file patch as returned by the files API."""
    return (
        "@@ -1,3 +1,4 @@\n"
        " import os\n"
        "+import sys\n"
        " \n"
        " def main():"
    )


@pytest.fixture
def sample_full_diff():
    """Provide a multi-file PR diff."""
    return (
        "diff --git a/main.py b/main.py\n"
        "index 1234567..abcdefg 100644\n"
        "--- a/main.py\n"
        "+++ b/main.py\n"
        "@@ -1,2 +1,3 @@\n"
        " import os\n"
        "+import sys\n"
        " print('hi')\n"
        "diff --git a/utils.py b/utils.py\n"
        "index 7654321..fedcba9 100644\n"
        "--- a/utils.py\n"
        "+++ b/utils.py\n"
        "@@ -5,2 +5,2 @@\n"
        "-old = 1\n"
        "+new = 1\n"
        " keep = 2"
    )


@pytest.fixture
def github_token():
    return "ghp_" + "a" * 36


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Reset environment variables for each test."""
    for key in list(os.environ.keys()):
        if key.startswith(("GITHUB_", "OPENAI_", "AZURE_", "ANTHROPIC_", "CUSTOM_", "DEDUP_")):
            monkeypatch.delenv(key, raising=False)
    for key in ("PR_NUMBER", "LOG_LEVEL", "DEBUG_MODE", "MAX_LINES_PER_FILE",
                "MAX_COMMENT_LENGTH", "ENABLE_FILE_LOGGING"):
        monkeypatch.delenv(key, raising=False)
