"""Shared fixtures for QuantMind tests."""

import sys
from pathlib import Path

import pytest

# Make src/ importable when the package is not installed
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from quantmind.config import ModelProvider, Settings, load_provider_configs  # noqa: E402


class FakeLLMClient:
    """Stands in for an LLM client: returns a canned reply or raises."""

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.calls = []
        self.closed = False

    async def generate(self, prompt, **kwargs):
        self.calls.append({"prompt": prompt, **kwargs})
        if self.error is not None:
            raise self.error
        return self.reply

    async def aclose(self):
        self.closed = True


@pytest.fixture
def make_llm_client():
    """Factory for FakeLLMClient instances."""
    return FakeLLMClient


@pytest.fixture
def settings(tmp_path):
    """Settings with no API keys, so nothing reaches a real provider."""
    return Settings(
        default_provider=ModelProvider.HUNYUAN_CN,
        providers=load_provider_configs({}),
        log_level="DEBUG",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def hunyuan_config():
    return load_provider_configs({"HUNYUAN_API_KEY": "hy-test-key"})[ModelProvider.HUNYUAN_CN]


@pytest.fixture
def aliyun_config():
    return load_provider_configs({"DASHSCOPE_API_KEY": "ds-test-key"})[ModelProvider.ALIYUN_CN]


@pytest.fixture
def gemini_config():
    return load_provider_configs({"GEMINI_API_KEY": "gm-test-key"})[ModelProvider.GEMINI_INTL]
