"""
Tests for the provider adapters.

All backends are mocked; no test reaches the network.
"""

import base64
import json
from unittest.mock import Mock, patch

import pytest
import requests
from google.genai import errors as genai_errors

from cardlead.providers import (
    GeminiProvider,
    OpenAIProvider,
    build_providers,
    parse_json_payload,
)
from cardlead.schema import ExtractionMethod
from tests.helpers import make_image_base64


def openai_response(content):
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    return response


def http_error(status, body=""):
    response = Mock()
    response.status_code = status
    response.text = body
    return requests.exceptions.HTTPError(f"{status} error", response=response)


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "card.png"
    path.write_bytes(base64.b64decode(make_image_base64("PNG")))
    return path


class TestParseJsonPayload:
    """Test cases for parse_json_payload()."""

    def test_plain_json(self):
        assert parse_json_payload('{"firstName": "A"}') == {"firstName": "A"}

    def test_fenced_json_with_prose(self):
        text = 'Here you go:\n```json\n{"company": "Acme", "emails": []}\n```\nThanks!'
        assert parse_json_payload(text) == {"company": "Acme", "emails": []}

    def test_unparseable(self):
        assert parse_json_payload("no json here") is None
        assert parse_json_payload("{not: valid}") is None
        assert parse_json_payload("") is None
        assert parse_json_payload(None) is None

    def test_non_object_rejected(self):
        assert parse_json_payload("[1, 2]") is None


class TestOpenAIProvider:
    """Test cases for OpenAIProvider."""

    @pytest.fixture
    def provider(self):
        return OpenAIProvider(api_key="sk-test", timeout=12)

    def test_not_configured(self):
        provider = OpenAIProvider(api_key=None)
        assert not provider.is_configured()
        with patch("cardlead.providers.requests.post") as mock_post:
            assert provider.extract("text", "text") is None
            mock_post.assert_not_called()

    def test_text_mode(self, provider):
        with patch("cardlead.providers.requests.post") as mock_post:
            mock_post.return_value = openai_response('```json\n{"firstName": "Jane"}\n```')

            result = provider.extract("Jane Doe\nAcme", ExtractionMethod.TEXT)

        assert result == {"firstName": "Jane"}
        _, kwargs = mock_post.call_args
        assert kwargs["timeout"] == 12
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        body = kwargs["json"]
        assert body["model"] == "gpt-4o"
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1]["content"] == "Jane Doe\nAcme"

    def test_vision_mode_sends_data_url(self, provider, image_file):
        with patch("cardlead.providers.requests.post") as mock_post:
            mock_post.return_value = openai_response('{"company": "Acme"}')

            result = provider.extract(image_file, "vision")

        assert result == {"company": "Acme"}
        body = mock_post.call_args[1]["json"]
        assert body["model"] == "gpt-4o-mini"
        image_part = body["messages"][0]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    def test_timeout_returns_none(self, provider):
        with patch("cardlead.providers.requests.post", side_effect=requests.exceptions.Timeout("slow")):
            assert provider.extract("text", "text") is None

    def test_malformed_reply_returns_none(self, provider):
        with patch("cardlead.providers.requests.post") as mock_post:
            mock_post.return_value = openai_response("Sorry, I cannot read this card.")
            assert provider.extract("text", "text") is None

    def test_empty_object_is_an_answer(self, provider):
        with patch("cardlead.providers.requests.post") as mock_post:
            mock_post.return_value = openai_response("{}")
            assert provider.extract("text", "text") == {}

    def test_categorize(self, provider):
        assert provider._categorize(requests.exceptions.Timeout()) == "timeout"
        assert provider._categorize(http_error(429, "Rate limit reached")) == "rate_limited"
        assert provider._categorize(http_error(429, '{"code": "insufficient_quota"}')) == "quota_exceeded"
        assert provider._categorize(http_error(401)) == "invalid_api_key"
        assert provider._categorize(http_error(500)) == "http_error"
        assert provider._categorize(ValueError("x")) == "error"


class TestGeminiProvider:
    """Test cases for GeminiProvider."""

    @pytest.fixture
    def provider(self):
        return GeminiProvider(api_key="g-test", model="gemini-2.5-flash", timeout=30)

    def test_text_mode(self, provider):
        with patch("cardlead.providers.genai.Client") as mock_client_cls:
            client = mock_client_cls.return_value
            client.models.generate_content.return_value = Mock(text='{"lastName": "Doe"}')

            result = provider.extract("Jane Doe", "text")

        assert result == {"lastName": "Doe"}
        _, client_kwargs = mock_client_cls.call_args
        assert client_kwargs["api_key"] == "g-test"
        assert client_kwargs["http_options"].timeout == 30000

        call_kwargs = client.models.generate_content.call_args[1]
        assert call_kwargs["model"] == "gemini-2.5-flash"
        assert call_kwargs["config"].temperature == 0.0

    def test_vision_mode(self, provider, image_file):
        with patch("cardlead.providers.genai.Client") as mock_client_cls:
            client = mock_client_cls.return_value
            client.models.generate_content.return_value = Mock(text='{"company": "Acme"}')

            assert provider.extract(image_file, "vision") == {"company": "Acme"}

        content = client.models.generate_content.call_args[1]["contents"][0]
        assert len(content.parts) == 2
        assert content.parts[1].inline_data.mime_type == "image/png"

    def test_client_is_reused(self, provider):
        with patch("cardlead.providers.genai.Client") as mock_client_cls:
            mock_client_cls.return_value.models.generate_content.return_value = Mock(text="{}")
            provider.extract("a", "text")
            provider.extract("b", "text")
            assert mock_client_cls.call_count == 1

    def test_api_error_returns_none(self, provider):
        error = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        )
        with patch("cardlead.providers.genai.Client") as mock_client_cls:
            mock_client_cls.return_value.models.generate_content.side_effect = error
            assert provider.extract("a", "text") is None
        assert provider._categorize(error) == "quota_exceeded"

    def test_empty_text_is_failure(self, provider):
        with patch("cardlead.providers.genai.Client") as mock_client_cls:
            mock_client_cls.return_value.models.generate_content.return_value = Mock(text=None)
            assert provider.extract("a", "text") is None


class TestBuildProviders:
    """Test cases for build_providers()."""

    class StubConfig:
        OPENAI_API_KEY = "sk"
        GEMINI_API_KEY = None
        GEMINI_MODEL = "gemini-x"
        PROVIDER_ORDER = ["gemini", "unknown", "openai"]
        PROVIDER_TIMEOUT = 5

    def test_order_follows_config(self):
        providers = build_providers(self.StubConfig)

        assert [p.name for p in providers] == ["gemini", "openai"]
        assert providers[0].model_name == "gemini-x"
        assert not providers[0].is_configured()
        assert providers[1].is_configured()
        assert providers[1].timeout == 5

    def test_describe(self):
        info = build_providers(self.StubConfig)[1].describe()
        assert json.dumps(info)
        assert info["name"] == "openai"
        assert info["configured"] is True
