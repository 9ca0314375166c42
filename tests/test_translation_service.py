import asyncio
from types import SimpleNamespace

import pytest
import requests

from i18n_pipeline.custom_service import CustomService
from i18n_pipeline.errors import ConfigError, ResponsePathError, TransformError
from i18n_pipeline.orchestrator import build_service
from i18n_pipeline.translation_service import (
    AnthropicService,
    GeminiService,
    OpenAICompatService,
    build_system_prompt,
    strip_fences_and_think,
)
from i18n_pipeline.types import CustomProviderConfig, LanguageFile, TranslationConfig


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakePostResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error", response=self)

    def json(self):
        return self.payload


@pytest.fixture
def posted(monkeypatch):
    state = {"calls": [], "response": None}

    def fake_post(url, **kwargs):
        state["calls"].append({"url": url, **kwargs})
        return state["response"]

    monkeypatch.setattr("i18n_pipeline.translation_service.requests.post", fake_post)
    return state


def test_strip_fences_and_think():
    assert strip_fences_and_think('<think>hmm</think>\n```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_fences_and_think("  plain  ") == "plain"


def test_system_prompt_mentions_context_and_tone():
    prompt = build_system_prompt("fr", description="Application bancaire", tone="formel")
    assert "to fr" in prompt
    assert "Context: Application bancaire" in prompt
    assert "formel tone" in prompt
    assert "Context" not in build_system_prompt("fr")


class TestOpenAICompat:

    def test_chat_completion(self):
        service = OpenAICompatService("deepseek", "sk-test", "deepseek-chat", tone="casual")
        completions = FakeCompletions(' {"a": "b"} ')
        service.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

        assert asyncio.run(service.translate('{"a": "x"}', "es")) == '{"a": "b"}'
        assert completions.kwargs["model"] == "deepseek-chat"
        assert completions.kwargs["response_format"] == {"type": "json_object"}
        assert completions.kwargs["messages"][1] == {"role": "user", "content": '{"a": "x"}'}

    def test_base_url_per_provider(self, monkeypatch):
        monkeypatch.delenv("XAI_BASE_URL", raising=False)
        service = OpenAICompatService("xai", "sk-test", "grok-2-1212")
        assert str(service.client.base_url).startswith("https://api.x.ai/v1")

    def test_empty_reply_is_transform_error(self):
        service = OpenAICompatService("openai", "sk-test", "gpt-4o")
        service.client = SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions("")))
        with pytest.raises(TransformError):
            asyncio.run(service.translate("{}", "fr"))

    def test_missing_key(self):
        with pytest.raises(ConfigError):
            OpenAICompatService("openai", "", "gpt-4o")


class TestHttpProviders:

    def test_anthropic(self, posted):
        posted["response"] = FakePostResponse({"content": [{"type": "text", "text": ' {"a": "b"}'}]})
        service = AnthropicService("key", "claude-3-5-sonnet-latest")

        assert asyncio.run(service.translate('{"a": "x"}', "fr")) == '{"a": "b"}'
        call = posted["calls"][0]
        assert call["headers"]["x-api-key"] == "key"
        assert call["json"]["model"] == "claude-3-5-sonnet-latest"

    def test_gemini(self, posted):
        payload = {"candidates": [{"content": {"parts": [{"text": '{"a": "b"}'}]}}]}
        posted["response"] = FakePostResponse(payload)
        service = GeminiService("key", "gemini-2.0-flash")

        assert asyncio.run(service.translate('{"a": "x"}', "fr")) == '{"a": "b"}'
        assert posted["calls"][0]["url"].endswith("/gemini-2.0-flash:generateContent")
        assert posted["calls"][0]["params"] == {"key": "key"}

    def test_unexpected_shape(self, posted):
        posted["response"] = FakePostResponse({"candidates": []})
        with pytest.raises(ResponsePathError):
            asyncio.run(GeminiService("key", "gemini-2.0-flash").translate("{}", "fr"))

    def test_http_error(self, posted):
        posted["response"] = FakePostResponse({"error": "quota"}, status_code=429)
        with pytest.raises(TransformError, match="429"):
            asyncio.run(AnthropicService("key", "claude-3-5-sonnet-latest").translate("{}", "fr"))


class TestBuildService:

    def _cfg(self, **kwargs):
        return TranslationConfig(source=LanguageFile("en.json", "en"), targets=[], **kwargs)

    def test_custom_provider_wins(self):
        cfg = self._cfg(provider="openai", custom_provider=CustomProviderConfig(url="http://localhost"))
        assert isinstance(build_service(cfg), CustomService)

    def test_provider_service(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "key")
        service = build_service(self._cfg(provider="anthropic"))
        assert isinstance(service, AnthropicService)
        assert service.model == "claude-3-5-sonnet-latest"

    def test_unknown_provider(self):
        with pytest.raises(ConfigError):
            build_service(self._cfg(provider="acme"))
