"""
AI Approver Package

Posts language-model review comments on GitHub pull requests, restricted to
lines the diff allows and filtered against comments already on the PR.
"""

__version__ = "1.0.0"
__author__ = "AI Approver contributors"
__description__ = "AI-based code review comments for GitHub pull requests"

# Submodules are loaded on first attribute access so that the pure modules
# (diff parsing, deduplication) import without the provider SDKs.

__all__ = [
    # Main classes
    'Config', 'CodeReviewer', 'CodeReviewerError',
    # Data models
    'PRDetails', 'PRFile', 'ReviewResult', 'ReviewComment', 'CandidateComment',
    'ExistingComment', 'SkippedFile', 'ProcessingStats', 'Severity',
    # Core
    'compute_commentable_lines', 'DiffParser', 'CommentDeduplicator', 'is_duplicate',
    'CommentProcessor',
    # Clients
    'GitHubClient', 'GitHubClientError', 'ModelAdapter', 'ModelAdapterError', 'get_model_adapter',
]

# Lazy import map: attribute -> (module_path, attr_name)
_lazy_exports = {
    'Config': ('ai_approver.config', 'Config'),
    'CodeReviewer': ('ai_approver.code_reviewer', 'CodeReviewer'),
    'CodeReviewerError': ('ai_approver.code_reviewer', 'CodeReviewerError'),
    # Models
    'PRDetails': ('ai_approver.models', 'PRDetails'),
    'PRFile': ('ai_approver.models', 'PRFile'),
    'ReviewResult': ('ai_approver.models', 'ReviewResult'),
    'ReviewComment': ('ai_approver.models', 'ReviewComment'),
    'CandidateComment': ('ai_approver.models', 'CandidateComment'),
    'ExistingComment': ('ai_approver.models', 'ExistingComment'),
    'SkippedFile': ('ai_approver.models', 'SkippedFile'),
    'ProcessingStats': ('ai_approver.models', 'ProcessingStats'),
    'Severity': ('ai_approver.models', 'Severity'),
    # Core
    'compute_commentable_lines': ('ai_approver.diff_parser', 'compute_commentable_lines'),
    'DiffParser': ('ai_approver.diff_parser', 'DiffParser'),
    'CommentDeduplicator': ('ai_approver.deduplicator', 'CommentDeduplicator'),
    'is_duplicate': ('ai_approver.deduplicator', 'is_duplicate'),
    'CommentProcessor': ('ai_approver.comment_processor', 'CommentProcessor'),
    # Clients
    'GitHubClient': ('ai_approver.github_client', 'GitHubClient'),
    'GitHubClientError': ('ai_approver.github_client', 'GitHubClientError'),
    'ModelAdapter': ('ai_approver.model_adapters', 'ModelAdapter'),
    'ModelAdapterError': ('ai_approver.model_adapters', 'ModelAdapterError'),
    'get_model_adapter': ('ai_approver.model_adapters', 'get_model_adapter'),
}


def __getattr__(name):
    target = _lazy_exports.get(name)
    if not target:
        raise AttributeError(f"module 'ai_approver' has no attribute '{name}'")
    module_path, attr_name = target
    try:
        module = __import__(module_path, fromlist=[attr_name])
    except ImportError as e:
        raise ImportError(f"Failed to import '{name}' from '{module_path}': {e}")
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
