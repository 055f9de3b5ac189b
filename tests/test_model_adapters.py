"""
Tests for ai_approver/model_adapters.py
"""

import json

import httpx
import openai
import pytest
from unittest.mock import Mock, patch
from tenacity import wait_none

from ai_approver.config import Config, GitHubConfig, ModelsConfig, ProviderSettings, ReviewConfig
from ai_approver.model_adapters import (
    SUMMARY_ERROR_MESSAGE,
    AnthropicAdapter,
    AzureOpenAIAdapter,
    CustomAdapter,
    ModelAdapterError,
    OpenAIAdapter,
    extract_comments_from_text,
    get_model_adapter,
    parse_review_response,
)
from ai_approver.models import PRFile, Severity


def _chat_response(content, total_tokens=42):
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    response.usage.total_tokens = total_tokens
    return response


@pytest.fixture
def openai_client():
    with patch("ai_approver.model_adapters.openai.OpenAI") as mock_openai:
        yield mock_openai.return_value


@pytest.fixture
def openai_adapter(openai_client):
    return OpenAIAdapter(ProviderSettings(model="gpt-4", api_key="sk-test"))


class TestParseReviewResponse:
    """Tests for parse_review_response."""

    def test_comments_object(self):
        """A comments object is parsed into candidates."""
        text = json.dumps({"comments": [{"line": 5, "body": "Missing await.", "severity": "high"}]})

        candidates = parse_review_response(text)

        assert len(candidates) == 1
        assert candidates[0].line == 5
        assert candidates[0].body == "Missing await."
        assert candidates[0].severity == Severity.HIGH

    def test_fenced_json(self):
        """Markdown code fences are removed."""
        text = '```json\n{"comments": [{"line": 3, "body": "Bug."}]}\n```'
        assert [c.line for c in parse_review_response(text)] == [3]

    def test_json_inside_prose(self):
        """The first JSON value in surrounding prose is used."""
        text = 'Here is my review: {"comments": [{"line": 8, "body": "Leak."}]} Thanks.'
        assert [c.line for c in parse_review_response(text)] == [8]

    def test_bare_array(self):
        """A top-level array is accepted."""
        assert [c.line for c in parse_review_response('[{"line": 2, "body": "x"}]')] == [2]

    def test_alternate_field(self):
        """Another array field whose items have line and body is accepted."""
        text = json.dumps({"issues": [{"line": 4, "body": "Off by one."}]})
        assert [c.line for c in parse_review_response(text)] == [4]

    def test_no_comment_field(self):
        """An object without comment items yields nothing."""
        assert parse_review_response(json.dumps({"summary": "fine", "tags": []})) == []

    def test_invalid_items_filtered(self):
        """Items with a bad line or empty body are dropped."""
        text = json.dumps({"comments": [
            {"line": "5", "body": "string line"},
            {"line": 0, "body": "zero"},
            {"line": True, "body": "bool"},
            {"line": 6, "body": "   "},
            {"line": 7},
            "not an object",
            {"line": 9, "body": "kept"},
        ]})
        assert [(c.line, c.body) for c in parse_review_response(text)] == [(9, "kept")]

    def test_sorted_by_severity(self):
        """Higher severities come first and ties keep their order."""
        text = json.dumps({"comments": [
            {"line": 1, "body": "a", "severity": "low"},
            {"line": 2, "body": "b"},
            {"line": 3, "body": "c", "severity": "high"},
            {"line": 4, "body": "d", "severity": "medium"},
            {"line": 5, "body": "e", "severity": "high"},
        ]})
        assert [c.line for c in parse_review_response(text)] == [3, 5, 4, 1, 2]

    def test_empty_response(self):
        """Empty and blank responses yield nothing."""
        assert parse_review_response("") == []
        assert parse_review_response("   \n") == []

    def test_text_fallback(self):
        """Free text with line markers is scanned."""
        text = "Line 12: Null check missing.\nAdd a guard.\nline 30: Unclosed file handle."
        candidates = parse_review_response(text)
        assert [(c.line, c.body) for c in candidates] == [
            (12, "Null check missing. Add a guard."),
            (30, "Unclosed file handle."),
        ]

    def test_plain_text_without_markers(self):
        """Text without line markers yields nothing."""
        assert parse_review_response("No issues found, great work!") == []

    def test_truncated_json(self):
        """Undecodable JSON falls back to the text scanner."""
        assert parse_review_response('{"comments": [{"line": 3') == []


class TestExtractCommentsFromText:
    """Tests for extract_comments_from_text."""

    def test_marker_without_body(self):
        """A marker with no text at all is skipped."""
        assert extract_comments_from_text("line 4\nline 5: real issue") == [
            {"line": 5, "body": "real issue"}
        ]

    def test_text_before_first_marker_ignored(self):
        """Lines before the first marker are not part of any comment."""
        assert extract_comments_from_text("Intro\nline: 7 Fix this") == [{"line": 7, "body": "Fix this"}]


class TestOpenAIAdapter:
    """Tests for OpenAIAdapter."""

    def test_missing_api_key(self):
        """A key is required from settings or the environment."""
        with patch("ai_approver.model_adapters.openai.OpenAI"):
            with pytest.raises(ModelAdapterError, match="OPENAI_API_KEY"):
                OpenAIAdapter(ProviderSettings(model="gpt-4"))

    def test_api_key_from_environment(self, monkeypatch):
        """OPENAI_API_KEY is used when settings carry no key."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        with patch("ai_approver.model_adapters.openai.OpenAI") as mock_openai:
            OpenAIAdapter(ProviderSettings(model="gpt-4"))
        assert mock_openai.call_args.kwargs["api_key"] == "sk-env"

    def test_review_code(self, openai_adapter, openai_client):
        """The review request uses JSON mode and the system prompt."""
        openai_client.chat.completions.create.return_value = _chat_response(
            json.dumps({"comments": [{"line": 2, "body": "Bug.", "severity": "low"}]})
        )

        candidates = openai_adapter.review_code("a.py", "@@ -1 +1,2 @@\n x\n+y")

        assert [c.line for c in candidates] == [2]
        request = openai_client.chat.completions.create.call_args.kwargs
        assert request["model"] == "gpt-4"
        assert request["response_format"] == {"type": "json_object"}
        assert request["messages"][0]["role"] == "system"
        assert "File: a.py" in request["messages"][1]["content"]

    def test_review_code_too_large(self, openai_client):
        """Diffs over the line limit are skipped without a request."""
        adapter = OpenAIAdapter(ProviderSettings(model="gpt-4", api_key="sk-test"), max_diff_lines=2)

        assert adapter.review_code("a.py", "a\nb\nc") == []
        openai_client.chat.completions.create.assert_not_called()

    def test_review_code_error(self, openai_adapter, openai_client):
        """Provider errors produce an empty list."""
        openai_client.chat.completions.create.side_effect = Exception("boom")

        assert openai_adapter.review_code("a.py", "+x") == []
        assert openai_adapter.get_statistics()["failed_requests"] == 1

    def test_generate_summary(self, openai_adapter, openai_client):
        """The summary is returned stripped and without JSON mode."""
        openai_client.chat.completions.create.return_value = _chat_response("  Looks good.  ")

        summary = openai_adapter.generate_summary([PRFile(filename="a.py", additions=1, deletions=0)])

        assert summary == "Looks good."
        assert "response_format" not in openai_client.chat.completions.create.call_args.kwargs

    def test_generate_summary_error(self, openai_adapter, openai_client):
        """A failed summary returns the fixed error text."""
        openai_client.chat.completions.create.side_effect = Exception("boom")
        assert openai_adapter.generate_summary([]) == SUMMARY_ERROR_MESSAGE

    def test_statistics(self, openai_adapter, openai_client):
        """Requests and tokens are counted."""
        openai_client.chat.completions.create.return_value = _chat_response('{"comments": []}', 42)
        openai_adapter.review_code("a.py", "+x")

        stats = openai_adapter.get_statistics()
        assert stats["provider"] == "openai"
        assert stats["model_name"] == "gpt-4"
        assert stats["total_requests"] == 1
        assert stats["success_rate"] == 1.0
        assert stats["total_tokens_used"] == 42

    def test_connection(self, openai_adapter, openai_client):
        """A non-empty reply counts as connected."""
        openai_client.chat.completions.create.return_value = _chat_response("OK")
        assert openai_adapter.test_connection() is True

        openai_client.chat.completions.create.side_effect = Exception("down")
        assert openai_adapter.test_connection() is False


class TestProviderRetry:
    """Tests for the retry policy on provider requests."""

    @pytest.fixture(autouse=True)
    def no_wait(self):
        with patch.object(OpenAIAdapter._complete.retry, "wait", wait_none()):
            yield

    @pytest.fixture
    def request_info(self):
        return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")

    def test_connection_error_retried(self, openai_adapter, openai_client, request_info):
        """A dropped connection is retried and the next reply is used."""
        openai_client.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=request_info),
            _chat_response(json.dumps({"comments": [{"line": 4, "body": "Off by one."}]})),
        ]

        candidates = openai_adapter.review_code("a.py", "+x")

        assert [c.line for c in candidates] == [4]
        assert openai_client.chat.completions.create.call_count == 2
        assert openai_adapter.get_statistics()["failed_requests"] == 0

    def test_bad_request_not_retried(self, openai_adapter, openai_client, request_info):
        """A rejected request is sent once and yields no comments."""
        openai_client.chat.completions.create.side_effect = openai.BadRequestError(
            "Invalid request", response=httpx.Response(400, request=request_info), body=None
        )

        assert openai_adapter.review_code("a.py", "+x") == []
        assert openai_client.chat.completions.create.call_count == 1

    def test_gives_up_after_three_attempts(self, openai_adapter, openai_client, request_info):
        """Persistent connection errors stop after three attempts."""
        openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request_info)

        assert openai_adapter.review_code("a.py", "+x") == []
        assert openai_client.chat.completions.create.call_count == 3
        assert openai_adapter.get_statistics()["failed_requests"] == 1


class TestAzureOpenAIAdapter:
    """Tests for AzureOpenAIAdapter."""

    def test_missing_endpoint(self):
        """An endpoint is required."""
        with patch("ai_approver.model_adapters.openai.AzureOpenAI"):
            with pytest.raises(ModelAdapterError, match="AZURE_OPENAI_ENDPOINT"):
                AzureOpenAIAdapter(ProviderSettings(api_key="az-key"))

    def test_uses_deployment(self):
        """The deployment name is sent as the model."""
        settings = ProviderSettings(
            api_key="az-key",
            endpoint="https://example.openai.azure.com",
            deployment_name="review-gpt",
            api_version="2024-02-01",
        )
        with patch("ai_approver.model_adapters.openai.AzureOpenAI") as mock_azure:
            client = mock_azure.return_value
            client.chat.completions.create.return_value = _chat_response('{"comments": []}')
            adapter = AzureOpenAIAdapter(settings)
            adapter.review_code("a.py", "+x")

        assert mock_azure.call_args.kwargs["azure_endpoint"] == "https://example.openai.azure.com"
        assert mock_azure.call_args.kwargs["api_version"] == "2024-02-01"
        assert client.chat.completions.create.call_args.kwargs["model"] == "review-gpt"
        assert adapter.get_statistics()["provider"] == "azure"


class TestAnthropicAdapter:
    """Tests for AnthropicAdapter."""

    def test_missing_api_key(self):
        """A key is required."""
        with patch("ai_approver.model_adapters.anthropic.Anthropic"):
            with pytest.raises(ModelAdapterError, match="ANTHROPIC_API_KEY"):
                AnthropicAdapter(ProviderSettings(model="claude-3-opus-20240229"))

    def test_review_code(self):
        """The system prompt is passed separately and text blocks are joined."""
        response = Mock()
        response.content = [Mock(type="text", text='{"comments": [{"line": 4, "body": "Race."}]}')]
        response.usage.input_tokens = 10
        response.usage.output_tokens = 5

        with patch("ai_approver.model_adapters.anthropic.Anthropic") as mock_anthropic:
            client = mock_anthropic.return_value
            client.messages.create.return_value = response
            adapter = AnthropicAdapter(ProviderSettings(model="claude-3-opus-20240229", api_key="ak"))
            candidates = adapter.review_code("a.py", "+x")

        assert [c.line for c in candidates] == [4]
        request = client.messages.create.call_args.kwargs
        assert "system" in request
        assert request["messages"][0]["role"] == "user"
        assert adapter.get_statistics()["total_tokens_used"] == 15


class TestCustomAdapter:
    """Tests for CustomAdapter."""

    @pytest.fixture
    def session(self):
        with patch("ai_approver.model_adapters.requests.Session") as mock_session:
            yield mock_session.return_value

    @pytest.fixture
    def adapter(self, session):
        return CustomAdapter(ProviderSettings(endpoint="https://review.example.com/api/", api_key="ck"))

    def test_missing_endpoint(self, session):
        """An endpoint is required."""
        with pytest.raises(ModelAdapterError, match="CUSTOM_API_ENDPOINT"):
            CustomAdapter(ProviderSettings())

    def test_headers(self, adapter, session):
        """The API key is sent as a bearer token."""
        headers = session.headers.update.call_args.args[0]
        assert headers["Authorization"] == "Bearer ck"
        assert headers["Content-Type"] == "application/json"

    def test_review_comments_object(self, adapter, session):
        """The review payload carries filename, diff and file content."""
        session.post.return_value.json.return_value = {"comments": [{"line": 3, "body": "x"}]}

        candidates = adapter.review_code("a.py", "+x", file_content="x")

        assert [c.line for c in candidates] == [3]
        url = session.post.call_args.args[0]
        assert url == "https://review.example.com/api/review"
        assert session.post.call_args.kwargs["json"] == {"filename": "a.py", "diff": "+x", "fileContent": "x"}

    def test_review_bare_array(self, adapter, session):
        """A bare array response is accepted."""
        session.post.return_value.json.return_value = [{"line": 1, "body": "y"}]
        assert [c.line for c in adapter.review_code("a.py", "+x")] == [1]

    def test_review_text_response(self, adapter, session):
        """A non-JSON body is parsed as text."""
        session.post.return_value.json.side_effect = ValueError("not json")
        session.post.return_value.text = "line 2: Wrong operator."
        assert [c.body for c in adapter.review_code("a.py", "+x")] == ["Wrong operator."]

    def test_review_http_error(self, adapter, session):
        """HTTP errors produce an empty list."""
        session.post.return_value.raise_for_status.side_effect = Exception("500")
        assert adapter.review_code("a.py", "+x") == []

    def test_summary(self, adapter, session):
        """The summary field is returned."""
        session.post.return_value.json.return_value = {"summary": "Solid change."}

        assert adapter.generate_summary([PRFile(filename="a.py", additions=2, deletions=1)]) == "Solid change."
        assert session.post.call_args.args[0] == "https://review.example.com/api/summary"
        assert session.post.call_args.kwargs["json"] == {
            "files": [{"filename": "a.py", "additions": 2, "deletions": 1}]
        }

    def test_summary_missing(self, adapter, session):
        """A response without a summary gets a placeholder."""
        session.post.return_value.json.return_value = {}
        assert adapter.generate_summary([]) == "No summary provided"

    def test_connection(self, adapter, session):
        """Any status below 500 counts as reachable."""
        session.get.return_value.status_code = 404
        assert adapter.test_connection() is True
        session.get.return_value.status_code = 503
        assert adapter.test_connection() is False

    def test_no_free_form_completion(self, adapter, session):
        """The custom service only answers review and summary requests."""
        with pytest.raises(ModelAdapterError, match="free-form"):
            adapter._complete(None, "hello", json_mode=False)
        session.post.assert_not_called()


class TestGetModelAdapter:
    """Tests for get_model_adapter."""

    def _config(self, github_token):
        return Config(
            github=GitHubConfig(token=github_token),
            models=ModelsConfig(openai=ProviderSettings(model="gpt-4", api_key="sk-test")),
            review=ReviewConfig(max_diff_lines=250),
        )

    def test_openai(self, github_token, openai_client):
        """The named provider is created with the review line limit."""
        adapter = get_model_adapter("openai", self._config(github_token))
        assert isinstance(adapter, OpenAIAdapter)
        assert adapter.max_diff_lines == 250

    def test_unknown_defaults_to_openai(self, github_token, openai_client):
        """Unknown names fall back to OpenAI."""
        adapter = get_model_adapter("mistral", self._config(github_token))
        assert type(adapter) is OpenAIAdapter

    def test_azure_alias(self, github_token):
        """azureopenai selects the Azure adapter."""
        config = self._config(github_token)
        config.models.azure = ProviderSettings(api_key="az", endpoint="https://x.openai.azure.com")
        with patch("ai_approver.model_adapters.openai.AzureOpenAI"):
            assert isinstance(get_model_adapter("azureopenai", config), AzureOpenAIAdapter)

    def test_missing_credentials(self, github_token):
        """Missing credentials raise ModelAdapterError."""
        with pytest.raises(ModelAdapterError):
            get_model_adapter("anthropic", self._config(github_token))
