"""
Command-line interface for the AI Approver.

Sub-commands:
  review           review one pull request
  ci               review the pull request described by CI environment variables
  delete-comments  remove the review comments and reviews left by one user
"""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .code_reviewer import CodeReviewer, CodeReviewerError
from .config import Config, LoggingConfig
from .github_client import GitHubClient, GitHubClientError
from .model_adapters import ModelAdapterError
from .validators import parse_repository, parse_pull_number


logger = logging.getLogger(__name__)


def setup_logging(logging_config: LoggingConfig) -> None:
    """Configure the root logger from the logging section of the configuration."""
    level = getattr(logging, logging_config.level.value.upper(), logging.INFO)
    formatter = logging.Formatter(logging_config.format)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if logging_config.enable_file_logging:
        file_handler = RotatingFileHandler(
            logging_config.log_file_path,
            maxBytes=logging_config.max_log_size,
            backupCount=logging_config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Third-party HTTP clients are chatty at DEBUG
    for noisy in ("urllib3", "github", "httpx", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-approver",
        description="AI-based code review comments for GitHub pull requests",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    review = subparsers.add_parser("review", help="Review a specific pull request")
    review.add_argument("-r", "--repo", required=True, help="GitHub repository in format owner/repo")
    review.add_argument("-p", "--pr", required=True, help="Pull request number")
    _add_model_options(review)

    ci = subparsers.add_parser("ci", help="Run as part of CI workflow")
    _add_model_options(ci)

    delete = subparsers.add_parser(
        "delete-comments",
        aliases=["delete_comments"],
        help="Delete all comments from a specific user on a pull request",
    )
    delete.add_argument("-u", "--user", required=True, help="GitHub username whose comments should be deleted")
    delete.add_argument("-r", "--repo", required=True, help="GitHub repository in format owner/repo")
    delete.add_argument("-p", "--pr", required=True, help="Pull request number")

    return parser


def _add_model_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-m", "--model", default="openai", help="AI model to use for review (default: openai)")
    parser.add_argument("-c", "--config", default=None, help="Path to a JSON config file")


def _ci_target() -> tuple:
    """Read the pull request to review from the CI environment.

    Raises:
        ValueError: If a required variable is missing or invalid
    """
    owner = os.environ.get("GITHUB_REPOSITORY_OWNER", "")
    repository = os.environ.get("GITHUB_REPOSITORY", "")
    pr_number = os.environ.get("PR_NUMBER", "")

    repo = repository.split("/", 1)[1] if "/" in repository else ""
    if not owner or not repo or not pr_number:
        raise ValueError("Missing required CI environment variables")
    return owner, repo, parse_pull_number(pr_number)


def _run_review(owner: str, repo: str, pull_number: int, args: argparse.Namespace) -> None:
    config = Config.load(args.config)
    setup_logging(config.logging)
    with CodeReviewer(config, model_name=args.model) as reviewer:
        result = reviewer.review_pull_request(owner, repo, pull_number)
        stats = reviewer.get_statistics()["processing"]
    logger.info(
        f"Posted {result.total_comments} comments "
        f"({stats['comments_on_invalid_lines']} on invalid lines and "
        f"{stats['duplicate_comments']} duplicates dropped)"
    )


def _run_delete(args: argparse.Namespace) -> None:
    owner, repo = parse_repository(args.repo)
    pull_number = parse_pull_number(args.pr)
    config = Config.from_environment()
    setup_logging(config.logging)

    client = GitHubClient(config.github)
    try:
        pr_details = client.get_pr_details(owner, repo, pull_number)
        client.delete_user_comments(pr_details, args.user)
    finally:
        client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit status."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "review":
            owner, repo = parse_repository(args.repo)
            _run_review(owner, repo, parse_pull_number(args.pr), args)
            logger.info("Review completed successfully.")
        elif args.command == "ci":
            owner, repo, pull_number = _ci_target()
            _run_review(owner, repo, pull_number, args)
            logger.info("CI review completed successfully.")
        else:
            _run_delete(args)
            logger.info("Comment deletion completed successfully.")
    except (ValueError, CodeReviewerError, GitHubClientError, ModelAdapterError) as e:
        # Logging may not be configured yet when the failure is in configuration
        if not logging.getLogger().handlers:
            logging.basicConfig(level=logging.INFO)
        logger.error(f"Error during {args.command}: {str(e)}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
