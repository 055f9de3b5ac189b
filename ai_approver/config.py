"""
Configuration management for the AI Approver.

Configuration is assembled from environment variables and, optionally, a JSON
file whose values are deep-merged on top. Every section is a dataclass that
validates itself in ``__post_init__``.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from typing import List, Dict, Any, Optional

from .deduplicator import DedupThresholds
from .env_reader import (
    get_env_str, get_env_optional, get_env_int, get_env_float, get_env_bool, get_env_enum
)
from .utils import matches_any
from .validators import (
    validate_required_string, validate_positive_int, validate_non_negative_int,
    validate_range, validate_github_token_format, validate_url
)


logger = logging.getLogger(__name__)


class LogLevel(Enum):
    """Available log levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ModelProvider(Enum):
    """Supported language-model providers."""
    OPENAI = "openai"
    AZURE = "azure"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"

    @classmethod
    def from_name(cls, name: str) -> Optional['ModelProvider']:
        """Resolve a provider name from the CLI, or None if unknown."""
        normalized = (name or "").strip().lower()
        if normalized == "azureopenai":
            normalized = "azure"
        try:
            return cls(normalized)
        except ValueError:
            return None


DEFAULT_EXCLUDE_PATTERNS = [
    r".*\.md$",
    r".*\.lock$",
    r"package-lock\.json$",
    r"yarn\.lock$",
    r"\.gitignore$",
    r"\.env.*",
]


@dataclass
class GitHubConfig:
    """Configuration for GitHub integration."""
    token: str
    api_base_url: str = "https://api.github.com"
    timeout: int = 30
    max_retries: int = 3

    def __post_init__(self):
        validate_required_string(self.token, "GitHub token")
        if not validate_github_token_format(self.token):
            raise ValueError("Invalid GitHub token format")
        validate_url(self.api_base_url, "api_base_url")
        validate_positive_int(self.timeout, "timeout")
        validate_positive_int(self.max_retries, "max_retries")


@dataclass
class ProviderSettings:
    """Settings for one model provider.

    Only the fields relevant to a provider are read by its adapter: ``model``
    for OpenAI and Anthropic, ``deployment_name``/``endpoint``/``api_version``
    for Azure, and ``endpoint``/paths/``headers`` for a custom HTTP service.
    """
    model: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 1000
    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    deployment_name: Optional[str] = None
    api_version: Optional[str] = None
    review_path: str = "/review"
    summary_path: str = "/summary"
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: int = 60
    max_retries: int = 3

    def __post_init__(self):
        validate_range(self.temperature, 0.0, 2.0, "temperature")
        validate_positive_int(self.max_tokens, "max_tokens")
        validate_positive_int(self.max_retries, "max_retries")
        if self.endpoint:
            validate_url(self.endpoint, "endpoint")


@dataclass
class ModelsConfig:
    """Per-provider settings."""
    openai: ProviderSettings = field(default_factory=lambda: ProviderSettings(model="gpt-4"))
    azure: ProviderSettings = field(default_factory=lambda: ProviderSettings(
        deployment_name="gpt-4", api_version="2023-05-15"))
    anthropic: ProviderSettings = field(default_factory=lambda: ProviderSettings(
        model="claude-3-opus-20240229"))
    custom: ProviderSettings = field(default_factory=lambda: ProviderSettings(
        endpoint="http://localhost:3000/api"))

    def get(self, provider: ModelProvider) -> ProviderSettings:
        return getattr(self, provider.value)


@dataclass
class ReviewConfig:
    """Configuration for review behaviour and comment formatting."""
    comment_prefix: str = "🤖"
    add_summary_comment: bool = True
    summary_header: str = "Here's an AI-powered analysis of the changes:"
    summary_footer: str = "_Note: This is an automated review. Please consider the suggestions carefully._"
    include_patterns: List[str] = field(default_factory=lambda: [".*"])
    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_diff_lines: int = 1000
    # 0 disables truncation
    max_comment_length: int = 0

    def __post_init__(self):
        validate_positive_int(self.max_diff_lines, "max_diff_lines")
        validate_non_negative_int(self.max_comment_length, "max_comment_length")


@dataclass
class DedupConfig:
    """Thresholds for duplicate comment detection."""
    keyword_threshold: float = 0.5
    text_threshold: float = 0.6
    template_threshold: float = 0.85
    line_proximity: int = 5

    def __post_init__(self):
        validate_range(self.keyword_threshold, 0.0, 1.0, "keyword_threshold")
        validate_range(self.text_threshold, 0.0, 1.0, "text_threshold")
        validate_range(self.template_threshold, 0.0, 1.0, "template_threshold")
        validate_non_negative_int(self.line_proximity, "line_proximity")

    def to_thresholds(self) -> DedupThresholds:
        return DedupThresholds(
            keyword_overlap=self.keyword_threshold,
            text_similarity=self.text_threshold,
            template_similarity=self.template_threshold,
            proximity=self.line_proximity,
        )


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    enable_file_logging: bool = False
    log_file_path: str = "ai_approver.log"
    max_log_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 3


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


# Keys of the JSON file that do not map onto a field of the same name
_SECTION_ALIASES = {"deduplication": "dedup"}


def _merge_dataclass(instance, overrides: Dict[str, Any], section: str):
    """Return a copy of ``instance`` with ``overrides`` deep-merged in.

    Nested dataclasses and dicts are merged recursively; every other value
    replaces the current one. Unknown keys are logged and ignored.
    """
    known = {f.name for f in fields(instance)}
    updates: Dict[str, Any] = {}
    for key, value in overrides.items():
        name = _snake_case(key)
        if name not in known:
            logger.warning(f"Ignoring unknown configuration key '{section}.{key}'")
            continue
        current = getattr(instance, name)
        if is_dataclass(current) and isinstance(value, dict):
            updates[name] = _merge_dataclass(current, value, f"{section}.{name}")
        elif isinstance(current, dict) and isinstance(value, dict):
            updates[name] = {**current, **value}
        elif isinstance(current, Enum):
            updates[name] = type(current)(str(value).lower())
        else:
            updates[name] = value
    return replace(instance, **updates)


@dataclass
class Config:
    """Main configuration class that combines all configuration sections."""
    github: GitHubConfig
    models: ModelsConfig = field(default_factory=ModelsConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_environment(cls) -> 'Config':
        """Create configuration from environment variables."""
        github_token = get_env_str("GITHUB_TOKEN")
        if not github_token:
            raise ValueError("GITHUB_TOKEN environment variable is required")

        github_config = GitHubConfig(
            token=github_token,
            api_base_url=get_env_str("GITHUB_API_URL", "https://api.github.com"),
            timeout=get_env_int("GITHUB_TIMEOUT", 30),
            max_retries=get_env_int("GITHUB_MAX_RETRIES", 3),
        )

        defaults = ModelsConfig()
        models_config = ModelsConfig(
            openai=replace(
                defaults.openai,
                api_key=get_env_optional("OPENAI_API_KEY"),
                model=get_env_str("OPENAI_MODEL", defaults.openai.model),
            ),
            azure=replace(
                defaults.azure,
                api_key=get_env_optional("AZURE_OPENAI_API_KEY"),
                endpoint=get_env_optional("AZURE_OPENAI_ENDPOINT"),
                deployment_name=get_env_str("AZURE_OPENAI_DEPLOYMENT", defaults.azure.deployment_name),
                api_version=get_env_str("AZURE_OPENAI_API_VERSION", defaults.azure.api_version),
            ),
            anthropic=replace(
                defaults.anthropic,
                api_key=get_env_optional("ANTHROPIC_API_KEY"),
                model=get_env_str("ANTHROPIC_MODEL", defaults.anthropic.model),
            ),
            custom=replace(
                defaults.custom,
                api_key=get_env_optional("CUSTOM_API_KEY"),
                endpoint=get_env_str("CUSTOM_API_ENDPOINT", defaults.custom.endpoint),
            ),
        )

        review_config = ReviewConfig(
            max_diff_lines=get_env_int("MAX_LINES_PER_FILE", 1000),
            max_comment_length=get_env_int("MAX_COMMENT_LENGTH", 0),
        )

        dedup_config = DedupConfig(
            keyword_threshold=get_env_float("DEDUP_KEYWORD_THRESHOLD", 0.5),
            text_threshold=get_env_float("DEDUP_TEXT_THRESHOLD", 0.6),
            template_threshold=get_env_float("DEDUP_TEMPLATE_THRESHOLD", 0.85),
            line_proximity=get_env_int("DEDUP_LINE_PROXIMITY", 5),
        )

        log_level = get_env_enum("LOG_LEVEL", LogLevel, LogLevel.INFO)
        if get_env_bool("DEBUG_MODE", False):
            log_level = LogLevel.DEBUG
        logging_config = LoggingConfig(
            level=log_level,
            enable_file_logging=get_env_bool("ENABLE_FILE_LOGGING", False),
        )

        return cls(
            github=github_config,
            models=models_config,
            review=review_config,
            dedup=dedup_config,
            logging=logging_config,
        )

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> 'Config':
        """Build configuration from the environment plus an optional JSON file.

        A missing, unreadable or invalid file is reported and the environment
        configuration is used as is.
        """
        config = cls.from_environment()
        if not config_path:
            return config

        resolved_path = os.path.abspath(config_path)
        if not os.path.exists(resolved_path):
            logger.warning(f"Config file not found at {resolved_path}, using default config")
            return config

        extension = os.path.splitext(resolved_path)[1].lower()
        if extension != ".json":
            logger.warning(f"Unsupported config file format: {extension}, using default config")
            return config

        try:
            with open(resolved_path, "r", encoding="utf-8") as f:
                overrides = json.load(f)
            if not isinstance(overrides, dict):
                raise ValueError("top-level JSON value must be an object")
            merged = config.merged_with(overrides)
            logger.info(f"Loaded configuration from {resolved_path}")
            return merged
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error loading config from {config_path}: {str(e)}")
            return config

    def merged_with(self, overrides: Dict[str, Any]) -> 'Config':
        """Deep-merge a reference-style configuration mapping into a copy.

        Accepts section keys (``models``, ``review``, ``deduplication``,
        ``logging``, ``github``) and the flat review keys of the reference
        config such as ``commentPrefix`` and ``fileFilters``.
        """
        sections: Dict[str, Dict[str, Any]] = {}
        section_names = {f.name for f in fields(self)}

        for key, value in overrides.items():
            name = _SECTION_ALIASES.get(key, _snake_case(key))
            if name == "file_filters" and isinstance(value, dict):
                review = sections.setdefault("review", {})
                if "include" in value:
                    review["include_patterns"] = list(value["include"])
                if "exclude" in value:
                    review["exclude_patterns"] = list(value["exclude"])
            elif name in section_names and isinstance(value, dict):
                sections.setdefault(name, {}).update(value)
            else:
                sections.setdefault("review", {})[key] = value

        return _merge_dataclass(self, sections, "config")

    def should_review_file(self, file_path: str) -> bool:
        """A file is reviewed when it matches an include filter and no exclude filter."""
        if not matches_any(file_path, self.review.include_patterns):
            return False
        return not matches_any(file_path, self.review.exclude_patterns)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, leaving out secrets."""
        def provider_dict(settings: ProviderSettings) -> Dict[str, Any]:
            return {
                "model": settings.model,
                "deployment_name": settings.deployment_name,
                "endpoint": settings.endpoint,
                "temperature": settings.temperature,
                "max_tokens": settings.max_tokens,
            }

        return {
            "github": {
                "api_base_url": self.github.api_base_url,
                "timeout": self.github.timeout,
                "max_retries": self.github.max_retries,
            },
            "models": {provider.value: provider_dict(self.models.get(provider)) for provider in ModelProvider},
            "review": {
                "comment_prefix": self.review.comment_prefix,
                "add_summary_comment": self.review.add_summary_comment,
                "include_patterns": self.review.include_patterns,
                "exclude_patterns": self.review.exclude_patterns,
                "max_diff_lines": self.review.max_diff_lines,
                "max_comment_length": self.review.max_comment_length,
            },
            "dedup": {
                "keyword_threshold": self.dedup.keyword_threshold,
                "text_threshold": self.dedup.text_threshold,
                "template_threshold": self.dedup.template_threshold,
                "line_proximity": self.dedup.line_proximity,
            },
            "logging": {
                "level": self.logging.level.value,
                "enable_file_logging": self.logging.enable_file_logging,
            },
        }
