"""Tests for the provider clients, with httpx and the Gemini SDK faked out."""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from quantmind.clients.llm_client import (
    GeminiLLMClient,
    LLMUnavailable,
    OpenAICompatibleClient,
    build_llm_client,
)
from quantmind.config import ModelProvider


def _completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _generate(client, *args, **kwargs):
    async def run():
        try:
            return await client.generate(*args, **kwargs)
        finally:
            await client.aclose()
    return asyncio.run(run())


# =====================================================================
# OPENAI-COMPATIBLE (HUNYUAN / ALIYUN)
# =====================================================================

class TestOpenAICompatibleClient:
    def test_posts_chat_completion(self, hunyuan_config):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return _completion('{"trend": "up"}')

        client = OpenAICompatibleClient(hunyuan_config, transport=httpx.MockTransport(handler))
        text = _generate(client, "Analyse 600519", system="Be brief.", json_mode=True)

        assert text == '{"trend": "up"}'
        assert seen["url"] == "https://api.hunyuan.cloud.tencent.com/v1/chat/completions"
        assert seen["auth"] == "Bearer hy-test-key"
        body = seen["body"]
        assert body["model"] == "hunyuan-pro"
        assert body["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Analyse 600519"},
        ]
        assert body["response_format"] == {"type": "json_object"}
        assert body["stream"] is False
        assert body["enable_enhancement"] is True

    def test_aliyun_extras_and_plain_mode(self, aliyun_config):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return _completion("plain text")

        client = OpenAICompatibleClient(aliyun_config, transport=httpx.MockTransport(handler))
        assert _generate(client, "hello") == "plain text"

        body = seen["body"]
        assert body["model"] == "qwen-max"
        assert body["enable_search"] is True
        assert "response_format" not in body
        assert body["messages"] == [{"role": "user", "content": "hello"}]

    def test_complex_task_uses_complex_model(self, hunyuan_config):
        seen = {}
        config = hunyuan_config.model_copy(update={"complex_model": "hunyuan-large"})

        def handler(request):
            seen["model"] = json.loads(request.content)["model"]
            return _completion("ok")

        client = OpenAICompatibleClient(config, transport=httpx.MockTransport(handler))
        _generate(client, "hi", complex_task=True)
        assert seen["model"] == "hunyuan-large"

    def test_error_status_uses_provider_message(self, hunyuan_config):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "quota exceeded"}})

        client = OpenAICompatibleClient(hunyuan_config, transport=httpx.MockTransport(handler))
        with pytest.raises(LLMUnavailable) as excinfo:
            _generate(client, "hi")
        assert excinfo.value.status_code == 429
        assert "quota exceeded" in excinfo.value.message
        assert excinfo.value.provider is ModelProvider.HUNYUAN_CN

    def test_error_status_with_text_body(self, hunyuan_config):
        def handler(request):
            return httpx.Response(503, text="upstream down")

        client = OpenAICompatibleClient(hunyuan_config, transport=httpx.MockTransport(handler))
        with pytest.raises(LLMUnavailable, match="upstream down"):
            _generate(client, "hi")

    def test_network_error(self, hunyuan_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = OpenAICompatibleClient(hunyuan_config, transport=httpx.MockTransport(handler))
        with pytest.raises(LLMUnavailable) as excinfo:
            _generate(client, "hi")
        assert excinfo.value.status_code is None

    def test_unexpected_payload(self, hunyuan_config):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        client = OpenAICompatibleClient(hunyuan_config, transport=httpx.MockTransport(handler))
        with pytest.raises(LLMUnavailable, match="unexpected completion payload"):
            _generate(client, "hi")

    def test_missing_key_makes_no_request(self, hunyuan_config):
        calls = []

        def handler(request):
            calls.append(request)
            return _completion("never")

        config = hunyuan_config.model_copy(update={"api_key": None})
        client = OpenAICompatibleClient(config, transport=httpx.MockTransport(handler))
        with pytest.raises(LLMUnavailable, match="API key not configured"):
            _generate(client, "hi")
        assert calls == []

    def test_base_url_is_required(self, gemini_config):
        with pytest.raises(ValueError):
            OpenAICompatibleClient(gemini_config)


# =====================================================================
# GEMINI
# =====================================================================

class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return self.response


def _fake_sdk(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


class TestGeminiLLMClient:
    def test_generate_json_mode(self, gemini_config):
        models = FakeModels(response=SimpleNamespace(text='{"a": 1}'))
        client = GeminiLLMClient(gemini_config, client=_fake_sdk(models))

        text = _generate(client, "prompt", system="sys", json_mode=True, complex_task=True)

        assert text == '{"a": 1}'
        call = models.calls[0]
        assert call["model"] == "gemini-3-pro-preview"
        assert call["contents"] == "prompt"
        assert call["config"].response_mime_type == "application/json"
        assert call["config"].max_output_tokens == 3000

    def test_default_model_and_plain_mode(self, gemini_config):
        models = FakeModels(response=SimpleNamespace(text="hello"))
        client = GeminiLLMClient(gemini_config, client=_fake_sdk(models))
        assert _generate(client, "prompt") == "hello"
        assert models.calls[0]["model"] == "gemini-3-flash-preview"
        assert models.calls[0]["config"].response_mime_type is None

    def test_falls_back_to_candidate_parts(self, gemini_config):
        part = SimpleNamespace(text="from parts")
        response = SimpleNamespace(
            text=None,
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))],
        )
        client = GeminiLLMClient(gemini_config, client=_fake_sdk(FakeModels(response=response)))
        assert _generate(client, "prompt") == "from parts"

    def test_empty_response(self, gemini_config):
        response = SimpleNamespace(text=None, candidates=[])
        client = GeminiLLMClient(gemini_config, client=_fake_sdk(FakeModels(response=response)))
        assert _generate(client, "prompt") == ""

    def test_sdk_error_becomes_unavailable(self, gemini_config):
        models = FakeModels(error=RuntimeError("503 UNAVAILABLE"))
        client = GeminiLLMClient(gemini_config, client=_fake_sdk(models))
        with pytest.raises(LLMUnavailable, match="503 UNAVAILABLE"):
            _generate(client, "prompt")

    def test_missing_key(self, gemini_config):
        client = GeminiLLMClient(gemini_config.model_copy(update={"api_key": None}))
        assert client.client is None
        with pytest.raises(LLMUnavailable, match="GEMINI_API_KEY"):
            _generate(client, "prompt")


def test_build_llm_client_picks_implementation(hunyuan_config, gemini_config):
    assert isinstance(build_llm_client(hunyuan_config), OpenAICompatibleClient)
    gemini = build_llm_client(gemini_config.model_copy(update={"api_key": None}))
    assert isinstance(gemini, GeminiLLMClient)
