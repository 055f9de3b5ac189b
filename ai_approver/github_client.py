"""
GitHub API client for the AI Approver.

PyGithub is used for object access (pull requests, files, comments, reviews)
and a plain ``requests`` session for the raw ``.diff`` media type, which
PyGithub does not expose.
"""

import base64
import logging
from typing import List, Optional, Tuple

import requests
from github import Github, GithubException
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import GitHubConfig
from .diff_parser import DiffParser
from .models import PRDetails, PRFile, ExistingComment, ReviewComment
from .utils import is_binary_file, sanitize_text


logger = logging.getLogger(__name__)

REVIEW_BODY = "AI-generated review comments"

_TRANSIENT_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class GitHubClientError(Exception):
    """Base exception for GitHub client errors."""
    pass


class PRNotFoundError(GitHubClientError):
    """Exception raised when PR is not found."""
    pass


class RateLimitError(GitHubClientError):
    """Exception raised when GitHub API rate limit is exceeded."""
    pass


def _translate_error(error: GithubException, what: str) -> GitHubClientError:
    """Map a PyGithub exception onto this module's exception hierarchy."""
    message = str(error)
    if error.status == 404:
        return PRNotFoundError(f"{what} not found")
    if error.status == 403 and "rate limit" in message.lower():
        return RateLimitError("GitHub API rate limit exceeded")
    return GitHubClientError(f"Failed to access {what}: {message}")


class GitHubClient:
    """GitHub API client with retry logic and error translation."""

    def __init__(self, config: GitHubConfig):
        self.config = config
        self._client = Github(config.token, base_url=config.api_base_url, timeout=config.timeout)
        self._session = requests.Session()
        self._session.headers.update({
            'Authorization': f'Bearer {config.token}',
            'User-Agent': 'AI-Approver/1.0',
            'Accept': 'application/vnd.github.v3+json'
        })
        self._repos = {}

        logger.info("Initialized GitHub client")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    def _get_repo(self, repo_name: str):
        if repo_name not in self._repos:
            logger.debug(f"Fetching repository: {repo_name}")
            try:
                self._repos[repo_name] = self._client.get_repo(repo_name)
            except GithubException as e:
                raise _translate_error(e, f"Repository {repo_name}")
        return self._repos[repo_name]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    def _get_pull(self, owner: str, repo: str, pull_number: int):
        repo_obj = self._get_repo(f"{owner}/{repo}")
        try:
            return repo_obj.get_pull(pull_number)
        except GithubException as e:
            raise _translate_error(e, f"PR #{pull_number} in {owner}/{repo}")

    def get_pr_details(self, owner: str, repo: str, pull_number: int) -> PRDetails:
        """Get pull request details.

        Raises:
            PRNotFoundError: If the repository or pull request does not exist
            GitHubClientError: For any other API failure
        """
        logger.debug(f"Fetching PR details for {owner}/{repo}#{pull_number}")
        pr = self._get_pull(owner, repo, pull_number)

        details = PRDetails(
            owner=owner,
            repo=repo,
            pull_number=pull_number,
            title=sanitize_text(pr.title or ""),
            description=sanitize_text(pr.body or ""),
            head_sha=pr.head.sha,
            base_sha=pr.base.sha,
        )
        logger.debug(f"Retrieved PR details: {details.title}")
        return details

    def get_pr_files(self, pr_details: PRDetails) -> List[PRFile]:
        """Get the files changed by a pull request."""
        pr = self._get_pull(pr_details.owner, pr_details.repo, pr_details.pull_number)
        try:
            files = [
                PRFile(
                    filename=f.filename,
                    status=f.status,
                    additions=f.additions,
                    deletions=f.deletions,
                    changes=f.changes,
                    sha=f.sha,
                    patch=getattr(f, 'patch', None),
                    binary=is_binary_file(f.filename),
                )
                for f in pr.get_files()
            ]
        except GithubException as e:
            raise _translate_error(e, f"files of PR #{pr_details.pull_number}")

        logger.info(f"Retrieved {len(files)} files from PR #{pr_details.pull_number}")
        return files

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    def get_pr_diff(self, pr_details: PRDetails) -> str:
        """Fetch the full unified diff of a pull request."""
        api_url = f"{self.config.api_base_url}/repos/{pr_details.repo_full_name}/pulls/{pr_details.pull_number}"
        logger.debug(f"Making diff API request to: {api_url}")

        response = self._session.get(
            api_url,
            headers={'Accept': 'application/vnd.github.v3.diff'},
            timeout=self.config.timeout,
        )

        if response.status_code == 200:
            logger.info(f"Successfully retrieved diff (length: {len(response.text)} characters)")
            return response.text
        if response.status_code == 404:
            raise PRNotFoundError(f"PR #{pr_details.pull_number} not found in {pr_details.repo_full_name}")
        if response.status_code == 403:
            if "rate limit" in response.text.lower():
                raise RateLimitError("GitHub API rate limit exceeded")
            raise GitHubClientError("Access forbidden - check GitHub token permissions")

        logger.error(f"Failed to get diff. Status code: {response.status_code}")
        logger.debug(f"Response content: {response.text[:500]}...")
        raise GitHubClientError(f"Failed to fetch diff: HTTP {response.status_code}")

    def get_file_patch(self, pr_details: PRDetails, filename: str,
                       files: Optional[List[PRFile]] = None) -> str:
        """Get the unified-diff patch of one file.

        The files API omits the patch for some files (large or renamed ones);
        those are sliced out of the raw PR diff instead.
        """
        if files is None:
            files = self.get_pr_files(pr_details)

        for pr_file in files:
            if pr_file.filename == filename and pr_file.patch:
                return pr_file.patch

        logger.info(f"Falling back to raw diff for {filename}")
        return DiffParser.extract_file_patch(self.get_pr_diff(pr_details), filename)

    def get_file_content(self, pr_details: PRDetails, sha: str) -> str:
        """Get a file's content by blob SHA, or "" when it cannot be fetched."""
        if not sha:
            return ""
        try:
            blob = self._get_repo(pr_details.repo_full_name).get_git_blob(sha)
            return base64.b64decode(blob.content).decode('utf-8')
        except (GitHubClientError, GithubException, ValueError) as e:
            logger.warning(f"Could not get file content for blob {sha}: {str(e)}")
            return ""

    def get_existing_comments(self, pr_details: PRDetails, path: str) -> List[ExistingComment]:
        """Get the review comments already posted on ``path``."""
        pr = self._get_pull(pr_details.owner, pr_details.repo, pr_details.pull_number)
        try:
            comments = [
                ExistingComment.from_api({
                    'id': c.id,
                    'line': getattr(c, 'line', None),
                    'original_line': getattr(c, 'original_line', None),
                    'body': c.body,
                    'user': {'login': getattr(c.user, 'login', '')} if c.user else None,
                })
                for c in pr.get_review_comments()
                if c.path == path
            ]
        except GithubException as e:
            raise _translate_error(e, f"review comments of PR #{pr_details.pull_number}")

        logger.info(f"Found {len(comments)} existing comments for {path}")
        return comments

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    def create_review(self, pr_details: PRDetails, comments: List[ReviewComment]) -> bool:
        """Post one review carrying all ``comments`` against the PR head commit.

        Returns False without calling the API when there is nothing to post.
        """
        if not comments:
            return False

        pr = self._get_pull(pr_details.owner, pr_details.repo, pr_details.pull_number)
        review_args = {
            'body': REVIEW_BODY,
            'event': "COMMENT",
            'comments': [comment.to_github_dict() for comment in comments],
        }

        try:
            if pr_details.head_sha:
                repo_obj = self._get_repo(pr_details.repo_full_name)
                review_args['commit'] = repo_obj.get_commit(pr_details.head_sha)
            review = pr.create_review(**review_args)
        except GithubException as e:
            logger.error(f"Failed to create review: {str(e)}")
            raise _translate_error(e, f"review on PR #{pr_details.pull_number}")

        logger.info(f"Created review {review.id} with {len(comments)} comments")
        return True

    def create_issue_comment(self, pr_details: PRDetails, body: str) -> None:
        """Post a conversation comment on the pull request."""
        pr = self._get_pull(pr_details.owner, pr_details.repo, pr_details.pull_number)
        try:
            pr.create_issue_comment(body)
        except GithubException as e:
            logger.error(f"Failed to create issue comment: {str(e)}")
            raise _translate_error(e, f"comments of PR #{pr_details.pull_number}")

    def delete_user_comments(self, pr_details: PRDetails, username: str) -> Tuple[int, int]:
        """Delete every review comment and review left by ``username``.

        Failures on individual items are logged and skipped.

        Returns:
            Tuple of (deleted comments, deleted reviews)
        """
        pr = self._get_pull(pr_details.owner, pr_details.repo, pr_details.pull_number)
        logger.info(f"Finding comments by {username} on PR #{pr_details.pull_number} "
                    f"in {pr_details.repo_full_name}...")

        try:
            user_comments = [c for c in pr.get_review_comments() if c.user and c.user.login == username]
        except GithubException as e:
            raise _translate_error(e, f"review comments of PR #{pr_details.pull_number}")
        logger.info(f"Found {len(user_comments)} comments by {username}")

        deleted_comments = 0
        for comment in user_comments:
            try:
                comment.delete()
                logger.info(f"Deleted comment #{comment.id}")
                deleted_comments += 1
            except GithubException as e:
                logger.error(f"Error deleting comment #{comment.id}: {str(e)}")

        try:
            user_reviews = [r for r in pr.get_reviews() if r.user and r.user.login == username]
        except GithubException as e:
            raise _translate_error(e, f"reviews of PR #{pr_details.pull_number}")
        logger.info(f"Found {len(user_reviews)} reviews by {username}")

        deleted_reviews = 0
        for review in user_reviews:
            try:
                review.delete()
                logger.info(f"Deleted review #{review.id}")
                deleted_reviews += 1
            except GithubException as e:
                logger.error(f"Error deleting review #{review.id}: {str(e)}")

        logger.info(f"Successfully deleted {deleted_comments} comments and {deleted_reviews} reviews by {username}")
        return deleted_comments, deleted_reviews

    def check_rate_limit(self) -> dict:
        """Check GitHub API rate limit status."""
        try:
            rate_limit = self._client.get_rate_limit()
            # PyGithub 2.x moved the core bucket from ``core`` to ``rate``
            core = getattr(rate_limit, 'core', None) or getattr(rate_limit, 'rate', None)
            if core is None:
                logger.warning(f"Unknown rate limit structure: {rate_limit}")
                return {'core': {'limit': 'unknown', 'remaining': 'unknown', 'reset': 'unknown'}}
            return {
                'core': {
                    'limit': core.limit,
                    'remaining': core.remaining,
                    'reset': core.reset.timestamp(),
                }
            }
        except (GithubException, requests.exceptions.RequestException) as e:
            logger.warning(f"Failed to check rate limit: {str(e)}")
            raise GitHubClientError(f"Failed to check rate limit: {str(e)}")

    def close(self):
        """Clean up resources."""
        self._session.close()
        logger.debug("GitHub client closed")
