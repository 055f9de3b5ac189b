"""
Language-model adapters for the AI Approver.

Each adapter turns one file's diff into a list of candidate comments and can
write a short pull request summary. The set of providers is closed: OpenAI,
Azure OpenAI, Anthropic and a custom HTTP service, selected by name through
:func:`get_model_adapter`.
"""

import json
import logging
import os
import re
from typing import List, Dict, Any, Iterable, Optional

import anthropic
import openai
import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .comment_processor import sort_by_severity
from .config import Config, ModelProvider, ProviderSettings
from .models import CandidateComment, PRFile
from .prompts import REVIEW_SYSTEM_PROMPT, build_review_prompt, build_summary_prompt
from .utils import sanitize_code_content


logger = logging.getLogger(__name__)

SUMMARY_ERROR_MESSAGE = "Unable to generate review summary due to an error."

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)

_provider_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=2, min=4, max=60),
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    reraise=True,
)


class ModelAdapterError(Exception):
    """Base exception for model adapter errors."""
    pass


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

_LINE_MARKER_PATTERN = re.compile(r"line\s*:?\s*(\d+)\s*:?", re.IGNORECASE)
_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


def _strip_fences(text: str) -> str:
    match = _FENCE_PATTERN.search(text)
    return match.group(1) if match else text


def _decode_first_json(text: str) -> Any:
    """Decode the first JSON object or array found in ``text``.

    Raises:
        ValueError: If no JSON value can be decoded
    """
    decoder = json.JSONDecoder()
    for index, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text[index:])
            return value
        except json.JSONDecodeError:
            continue
    raise ValueError("No JSON value found in response")


def extract_comment_items(data: Any) -> List[Any]:
    """Find the list of comment items inside a decoded model response.

    Accepts a top-level array, a ``comments`` array, or any other array field
    whose first item carries both ``line`` and ``body``.
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    if isinstance(data.get("comments"), list):
        return data["comments"]
    for key, value in data.items():
        if isinstance(value, list) and value:
            first = value[0]
            if isinstance(first, dict) and first.get("line") and first.get("body"):
                logger.info(f"Using comments from response field '{key}'")
                return value
    logger.info("No comments found in response structure")
    return []


def extract_comments_from_text(text: str) -> List[Dict[str, Any]]:
    """Recover ``line``/``body`` pairs from a free-text response.

    Each ``line: N`` marker starts a new comment; following lines are joined
    into its body.
    """
    comments: List[Dict[str, Any]] = []
    current_line: Optional[int] = None
    current_body = ""

    for raw in (text or "").split("\n"):
        match = _LINE_MARKER_PATTERN.search(raw)
        if match:
            if current_line is not None and current_body.strip():
                comments.append({"line": current_line, "body": current_body.strip()})
            current_line = int(match.group(1))
            current_body = _LINE_MARKER_PATTERN.sub("", raw, count=1).strip()
        elif current_line is not None:
            current_body += " " + raw.strip()

    if current_line is not None and current_body.strip():
        comments.append({"line": current_line, "body": current_body.strip()})
    return comments


def to_candidates(items: Iterable[Any]) -> List[CandidateComment]:
    """Validate raw items and order them by severity, most severe first."""
    items = list(items)
    candidates = []
    for item in items:
        candidate = CandidateComment.from_dict(item)
        if candidate is None:
            logger.debug(f"Filtering out invalid comment: {item!r}")
            continue
        candidates.append(candidate)

    if len(candidates) != len(items):
        logger.info(f"Filtered out {len(items) - len(candidates)} invalid comments")

    return sort_by_severity(candidates)


def parse_review_response(response_text: str) -> List[CandidateComment]:
    """Parse a model's raw review response into candidate comments.

    Never raises: JSON that cannot be decoded falls back to the plain-text
    ``line: N`` scanner, and anything else yields an empty list.
    """
    if not response_text or not response_text.strip():
        logger.warning("Empty response from model")
        return []

    try:
        data = _decode_first_json(_strip_fences(response_text.strip()))
        items = extract_comment_items(data)
    except ValueError:
        logger.warning("Model response is not valid JSON; extracting comments from text")
        logger.debug(f"Raw response preview: {response_text[:500]}...")
        items = extract_comments_from_text(response_text)

    return to_candidates(items)


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

class ModelAdapter:
    """Common behaviour for all providers."""

    provider: ModelProvider = None

    def __init__(self, settings: ProviderSettings, max_diff_lines: int = 1000):
        self.settings = settings
        self.max_diff_lines = max_diff_lines

        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._total_tokens_used = 0

    @property
    def model_name(self) -> str:
        return self.settings.model or ""

    def review_code(self, filename: str, diff: str, file_content: Optional[str] = None) -> List[CandidateComment]:
        """Ask the model for review comments on one file.

        Provider failures are logged and produce an empty list so that one
        file never aborts the whole review.
        """
        diff_lines = len(diff.split("\n")) if diff else 0
        if diff_lines > self.max_diff_lines:
            logger.info(f"Skipping {filename}: Too large ({diff_lines} lines)")
            return []

        self._total_requests += 1
        try:
            user_prompt = build_review_prompt(filename, sanitize_code_content(diff), file_content)
            candidates = self._review(filename, user_prompt, diff, file_content)
            self._successful_requests += 1
            logger.info(f"Found {len(candidates)} review comments for {filename}")
            return candidates
        except Exception as e:
            self._failed_requests += 1
            logger.error(f"Error reviewing {filename} with {self.provider.value}: {str(e)}")
            return []

    def generate_summary(self, files: List[PRFile]) -> str:
        """Generate a summary of the pull request from its changed files."""
        logger.info("Generating PR summary")
        self._total_requests += 1
        try:
            summary = self._summarize(files, build_summary_prompt(files))
            self._successful_requests += 1
            return summary.strip()
        except Exception as e:
            self._failed_requests += 1
            logger.error(f"Error generating summary: {str(e)}")
            return SUMMARY_ERROR_MESSAGE

    def test_connection(self) -> bool:
        try:
            reply = self._complete(None, "Respond with 'OK' if you can read this message.", json_mode=False)
            return bool(reply and reply.strip())
        except Exception as e:
            logger.error(f"Connection test failed: {str(e)}")
            return False

    def get_statistics(self) -> Dict[str, Any]:
        success_rate = 0.0
        if self._total_requests > 0:
            success_rate = self._successful_requests / self._total_requests

        return {
            'provider': self.provider.value,
            'model_name': self.model_name,
            'total_requests': self._total_requests,
            'successful_requests': self._successful_requests,
            'failed_requests': self._failed_requests,
            'success_rate': success_rate,
            'total_tokens_used': self._total_tokens_used,
        }

    def close(self):
        logger.debug(f"{self.provider.value} adapter closed")

    # Hooks for chat-style providers; the custom adapter overrides _review/_summarize

    def _review(self, filename: str, user_prompt: str, diff: str,
                file_content: Optional[str]) -> List[CandidateComment]:
        response_text = self._complete(REVIEW_SYSTEM_PROMPT, user_prompt, json_mode=True)
        logger.debug(f"Raw AI response: {response_text[:500]}")
        return parse_review_response(response_text)

    def _summarize(self, files: List[PRFile], prompt: str) -> str:
        return self._complete(None, prompt, json_mode=False)

    def _complete(self, system_prompt: Optional[str], user_prompt: str, json_mode: bool) -> str:
        """Send one chat request and return the reply text. Chat providers override this."""
        raise NotImplementedError


class OpenAIAdapter(ModelAdapter):
    """Adapter for OpenAI chat models."""

    provider = ModelProvider.OPENAI

    def __init__(self, settings: ProviderSettings, max_diff_lines: int = 1000):
        super().__init__(settings, max_diff_lines)
        api_key = settings.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ModelAdapterError(
                "OpenAI API key is required. Set OPENAI_API_KEY environment variable or provide in config.")

        self._model = settings.model or "gpt-4o"
        key_kind = "project" if api_key.startswith("sk-proj-") else "standard"
        self._client = openai.OpenAI(api_key=api_key, timeout=settings.timeout, max_retries=0)
        logger.info(f"Using OpenAI API with {key_kind} key and model: {self._model}")

    @property
    def model_name(self) -> str:
        return self._model

    @_provider_retry
    def _complete(self, system_prompt: Optional[str], user_prompt: str, json_mode: bool) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        request: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        response = self._client.chat.completions.create(**request)
        usage = getattr(response, "usage", None)
        if usage is not None and isinstance(getattr(usage, "total_tokens", None), int):
            self._total_tokens_used += usage.total_tokens
        return response.choices[0].message.content or ""


class AzureOpenAIAdapter(OpenAIAdapter):
    """Adapter for OpenAI models deployed on Azure."""

    provider = ModelProvider.AZURE

    def __init__(self, settings: ProviderSettings, max_diff_lines: int = 1000):
        ModelAdapter.__init__(self, settings, max_diff_lines)
        api_key = settings.api_key or os.environ.get("AZURE_OPENAI_API_KEY")
        endpoint = settings.endpoint or os.environ.get("AZURE_OPENAI_ENDPOINT")
        if not api_key:
            raise ModelAdapterError(
                "Azure OpenAI API key is required. Set AZURE_OPENAI_API_KEY environment variable or provide in config.")
        if not endpoint:
            raise ModelAdapterError(
                "Azure OpenAI endpoint is required. Set AZURE_OPENAI_ENDPOINT environment variable or provide in config.")

        # Azure addresses models by deployment name
        self._model = settings.deployment_name or "gpt-4"
        self._client = openai.AzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=settings.api_version or "2023-05-15",
            timeout=settings.timeout,
            max_retries=0,
        )
        logger.info(f"Using Azure OpenAI deployment: {self._model}")


class AnthropicAdapter(ModelAdapter):
    """Adapter for Anthropic Claude models."""

    provider = ModelProvider.ANTHROPIC

    def __init__(self, settings: ProviderSettings, max_diff_lines: int = 1000):
        super().__init__(settings, max_diff_lines)
        api_key = settings.api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ModelAdapterError(
                "Anthropic API key is required. Set ANTHROPIC_API_KEY environment variable or provide in config.")

        self._model = settings.model or "claude-3-opus-20240229"
        client_options: Dict[str, Any] = {"api_key": api_key, "timeout": settings.timeout, "max_retries": 0}
        if settings.endpoint:
            client_options["base_url"] = settings.endpoint
        self._client = anthropic.Anthropic(**client_options)
        logger.info(f"Using Anthropic API with model: {self._model}")

    @property
    def model_name(self) -> str:
        return self._model

    @_provider_retry
    def _complete(self, system_prompt: Optional[str], user_prompt: str, json_mode: bool) -> str:
        request: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            request["system"] = system_prompt

        response = self._client.messages.create(**request)
        usage = getattr(response, "usage", None)
        if usage is not None:
            tokens = (getattr(usage, "input_tokens", 0) or 0) + (getattr(usage, "output_tokens", 0) or 0)
            if isinstance(tokens, int):
                self._total_tokens_used += tokens
        return "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", "text") == "text"
        )


class CustomAdapter(ModelAdapter):
    """Adapter for a custom HTTP review service.

    The service receives ``{"filename", "diff", "fileContent"}`` at
    ``endpoint + review_path`` and answers with a ``comments`` array (or a bare
    array); summaries are requested at ``endpoint + summary_path`` and read
    from a ``summary`` field or a plain string body.
    """

    provider = ModelProvider.CUSTOM

    def __init__(self, settings: ProviderSettings, max_diff_lines: int = 1000):
        super().__init__(settings, max_diff_lines)
        self.endpoint = settings.endpoint or os.environ.get("CUSTOM_API_ENDPOINT")
        if not self.endpoint:
            raise ModelAdapterError(
                "Custom API endpoint is required. Set CUSTOM_API_ENDPOINT environment variable or provide in config.")
        self.endpoint = self.endpoint.rstrip("/")

        headers = dict(settings.headers or {})
        api_key = settings.api_key or os.environ.get("CUSTOM_API_KEY")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        headers.setdefault("Content-Type", "application/json")

        self._session = requests.Session()
        self._session.headers.update(headers)
        logger.info(f"Using custom model API at {self.endpoint}")

    @property
    def model_name(self) -> str:
        return self.settings.model or self.endpoint

    def _complete(self, system_prompt: Optional[str], user_prompt: str, json_mode: bool) -> str:
        raise ModelAdapterError("The custom review service has no free-form completion endpoint")

    @_provider_retry
    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        response = self._session.post(f"{self.endpoint}{path}", json=payload, timeout=self.settings.timeout)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            return response.text

    def _review(self, filename: str, user_prompt: str, diff: str,
                file_content: Optional[str]) -> List[CandidateComment]:
        data = self._post(self.settings.review_path, {
            "filename": filename,
            "diff": diff,
            "fileContent": file_content,
        })
        if isinstance(data, str):
            return parse_review_response(data)
        if isinstance(data, dict) and isinstance(data.get("comments"), list):
            return to_candidates(data["comments"])
        if isinstance(data, list):
            return to_candidates(data)
        return []

    def _summarize(self, files: List[PRFile], prompt: str) -> str:
        data = self._post(self.settings.summary_path, {
            "files": [
                {"filename": f.filename, "additions": f.additions, "deletions": f.deletions}
                for f in files
            ],
        })
        if isinstance(data, dict) and data.get("summary"):
            return str(data["summary"])
        if isinstance(data, str):
            return data
        return "No summary provided"

    def test_connection(self) -> bool:
        try:
            response = self._session.get(self.endpoint, timeout=self.settings.timeout)
            return response.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.error(f"Connection test failed: {str(e)}")
            return False

    def close(self):
        self._session.close()
        super().close()


_ADAPTERS = {
    ModelProvider.OPENAI: OpenAIAdapter,
    ModelProvider.AZURE: AzureOpenAIAdapter,
    ModelProvider.ANTHROPIC: AnthropicAdapter,
    ModelProvider.CUSTOM: CustomAdapter,
}


def get_model_adapter(model_name: str, config: Config) -> ModelAdapter:
    """Create the adapter for a provider name, defaulting to OpenAI.

    Raises:
        ModelAdapterError: If the selected provider is missing credentials
    """
    provider = ModelProvider.from_name(model_name)
    if provider is None:
        logger.warning(f'Model "{model_name}" not recognized, defaulting to OpenAI')
        provider = ModelProvider.OPENAI

    adapter_class = _ADAPTERS[provider]
    return adapter_class(config.models.get(provider), max_diff_lines=config.review.max_diff_lines)
