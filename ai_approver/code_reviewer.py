"""
Main code reviewer orchestrator for the AI Approver.

This module contains the CodeReviewer class that walks the files of a pull
request, asks the configured model for comments, filters them against the
diff and the comments already posted, and publishes the result.
"""

import logging
import time
from typing import List, Dict, Any, Optional

from .comment_processor import CommentProcessor
from .config import Config
from .deduplicator import CommentDeduplicator
from .diff_parser import DiffParser, compute_commentable_lines
from .github_client import GitHubClient, GitHubClientError
from .model_adapters import ModelAdapter, get_model_adapter
from .models import PRDetails, PRFile, ProcessingStats, ReviewResult, SkippedFile


logger = logging.getLogger(__name__)


class CodeReviewerError(Exception):
    """Base exception for code reviewer errors."""
    pass


class _FileTooLarge(Exception):
    pass


class CodeReviewer:
    """Main orchestrator class for the code review process."""

    def __init__(
        self,
        config: Config,
        model_adapter: Optional[ModelAdapter] = None,
        github_client: Optional[GitHubClient] = None,
        model_name: str = "openai",
    ):
        self.config = config

        self.github_client = github_client or GitHubClient(config.github)
        self.model_adapter = model_adapter or get_model_adapter(model_name, config)
        self.diff_parser = DiffParser()
        self.comment_processor = CommentProcessor(
            config.review, CommentDeduplicator(config.dedup.to_thresholds())
        )

        self.stats = ProcessingStats(start_time=time.time())

        logger.info(f"Initialized CodeReviewer with {self.model_adapter.provider.value} model adapter")

    def review_pull_request(self, owner: str, repo: str, pull_number: int) -> ReviewResult:
        """Review every eligible file of a pull request and post the results.

        Raises:
            CodeReviewerError: If the pull request or its file list cannot be fetched
        """
        logger.info("=== Starting Pull Request Review ===")
        logger.info(f"Reviewing PR #{pull_number} in {owner}/{repo}")
        self.stats = ProcessingStats(start_time=time.time())

        try:
            pr_details = self.github_client.get_pr_details(owner, repo, pull_number)
            files = self.github_client.get_pr_files(pr_details)
        except GitHubClientError as e:
            logger.error(f"Error reviewing pull request: {str(e)}")
            raise CodeReviewerError(f"Failed to load PR #{pull_number}: {str(e)}") from e

        result = ReviewResult(pr_details=pr_details)

        files_to_review = [f for f in files if self.config.should_review_file(f.filename)]
        filtered_out = len(files) - len(files_to_review)
        if filtered_out:
            logger.info(f"Filtered out {filtered_out} files by include/exclude patterns")
        logger.info(f"Reviewing {len(files_to_review)} files")

        for pr_file in files_to_review:
            try:
                if self._review_file(pr_details, pr_file, files, result):
                    result.reviewed_files += 1
                    self.stats.files_processed += 1
                else:
                    self.stats.files_skipped += 1
            except _FileTooLarge as e:
                result.skipped_files.append(SkippedFile(
                    filename=pr_file.filename,
                    reason=f"Too many changes (>{self.config.review.max_diff_lines} lines)",
                ))
                self.stats.files_skipped += 1
                logger.info(f"Skipped {pr_file.filename}: {str(e)}")
            except Exception as e:
                # One failing file must not abort the rest of the review
                self.stats.errors_encountered += 1
                result.errors.append(f"{pr_file.filename}: {str(e)}")
                logger.error(f"Error reviewing {pr_file.filename}: {str(e)}")

        if result.skipped_files:
            self._post_comment(
                pr_details,
                self.comment_processor.format_skipped_files_summary(result.reviewed_files, result.skipped_files),
                result,
                "review summary",
            )

        if self.config.review.add_summary_comment:
            skipped_names = {skipped.filename for skipped in result.skipped_files}
            summary_files = [f for f in files_to_review if f.filename not in skipped_names]
            summary = self.model_adapter.generate_summary(summary_files)
            self._post_comment(
                pr_details, self.comment_processor.format_summary_comment(summary), result, "summary"
            )

        self.stats.end_time = time.time()
        result.processing_time = self.stats.duration
        logger.info(
            f"=== Review completed: {result.reviewed_files} files reviewed, "
            f"{len(result.skipped_files)} skipped, {result.total_comments} comments posted "
            f"in {result.processing_time:.2f}s ==="
        )
        return result

    def _review_file(self, pr_details: PRDetails, pr_file: PRFile, files: List[PRFile],
                     result: ReviewResult) -> bool:
        """Review one file. Returns False when the file was skipped."""
        filename = pr_file.filename
        logger.info(f"Reviewing file: {filename}")

        if pr_file.is_removed or pr_file.is_binary:
            logger.info(f"Skipping {filename}: file is removed or binary")
            return False

        patch = self.github_client.get_file_patch(pr_details, filename, files)
        if not patch or not patch.strip():
            logger.info(f"Skipping {filename}: no diff available")
            return False

        line_count = DiffParser.count_lines(patch)
        if line_count > self.config.review.max_diff_lines:
            raise _FileTooLarge(f"File too large to review ({line_count} lines)")

        commentable_lines = compute_commentable_lines(patch)
        if not commentable_lines:
            logger.info(f"No valid comment lines found in diff for {filename}")
            return False

        parsed = self.diff_parser.parse(patch, filename)
        logger.debug(f"{filename}: {len(parsed.hunks)} hunks, +{parsed.additions}/-{parsed.deletions}")

        existing = self.github_client.get_existing_comments(pr_details, filename)
        file_content = self.github_client.get_file_content(pr_details, pr_file.sha)

        candidates = self.model_adapter.review_code(filename, patch, file_content or None)
        self.stats.comments_generated += len(candidates)

        comments, invalid, duplicates = self.comment_processor.process_with_counts(
            candidates, commentable_lines, existing, filename
        )
        self.stats.comments_on_invalid_lines += invalid
        self.stats.duplicate_comments += duplicates
        result.comments_on_invalid_lines += invalid
        result.duplicate_comments += duplicates

        if comments and self.github_client.create_review(pr_details, comments):
            result.comments.extend(comments)
            self.stats.comments_posted += len(comments)
        return True

    def _post_comment(self, pr_details: PRDetails, body: str, result: ReviewResult, kind: str) -> None:
        try:
            self.github_client.create_issue_comment(pr_details, body)
            logger.info(f"Posted {kind} comment")
        except GitHubClientError as e:
            self.stats.errors_encountered += 1
            result.errors.append(f"Failed to post {kind} comment: {str(e)}")
            logger.error(f"Error adding {kind} comment: {str(e)}")

    def delete_user_comments(self, owner: str, repo: str, pull_number: int, username: str) -> Dict[str, int]:
        """Delete all review comments and reviews left by ``username`` on a PR.

        Raises:
            CodeReviewerError: If the pull request cannot be accessed
        """
        try:
            pr_details = self.github_client.get_pr_details(owner, repo, pull_number)
            deleted_comments, deleted_reviews = self.github_client.delete_user_comments(pr_details, username)
        except GitHubClientError as e:
            logger.error(f"Error deleting comments: {str(e)}")
            raise CodeReviewerError(f"Failed to delete comments by {username}: {str(e)}") from e

        return {'comments': deleted_comments, 'reviews': deleted_reviews}

    def get_statistics(self) -> Dict[str, Any]:
        """Get processing, model and parsing statistics."""
        return {
            'processing': {
                'duration': self.stats.duration,
                'files_processed': self.stats.files_processed,
                'files_skipped': self.stats.files_skipped,
                'comments_generated': self.stats.comments_generated,
                'comments_posted': self.stats.comments_posted,
                'comments_on_invalid_lines': self.stats.comments_on_invalid_lines,
                'duplicate_comments': self.stats.duplicate_comments,
                'errors_encountered': self.stats.errors_encountered,
            },
            'model': self.model_adapter.get_statistics(),
            'parsing': self.diff_parser.get_parsing_statistics(),
        }

    def test_connections(self) -> Dict[str, bool]:
        """Test connections to GitHub and the model provider."""
        logger.info("Testing connections to external services...")
        results = {}

        try:
            remaining = self.github_client.check_rate_limit().get('core', {}).get('remaining', 'unknown')
            results['github'] = True
            logger.info(f"✅ GitHub connection: OK (remaining: {remaining})")
        except GitHubClientError as e:
            results['github'] = False
            logger.error(f"❌ GitHub connection failed: {str(e)}")

        provider = self.model_adapter.provider.value
        results['model'] = self.model_adapter.test_connection()
        if results['model']:
            logger.info(f"✅ {provider} connection: OK")
        else:
            logger.error(f"❌ {provider} connection failed")

        return results

    def close(self):
        """Clean up resources."""
        logger.info("Cleaning up CodeReviewer resources...")
        self.github_client.close()
        self.model_adapter.close()
        logger.info("CodeReviewer cleanup completed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
