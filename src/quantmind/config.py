"""
quantmind/config.py

Explicit configuration records for the model providers and the service.

Nothing here is read at call time: load_settings() snapshots the environment
(after python-dotenv has loaded a .env file) into a Settings object, and
that object is handed to whatever needs it.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional
import os

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class ModelProvider(str, Enum):
    GEMINI_INTL = "gemini"
    HUNYUAN_CN = "hunyuan"
    ALIYUN_CN = "aliyun"


class MarketType(str, Enum):
    CN = "CN"  # A-Share
    HK = "HK"
    US = "US"


class ProviderConfig(BaseModel):
    provider: ModelProvider
    name: str
    model: str
    base_url: Optional[str] = None  # unused by the Gemini SDK client
    complex_model: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 60.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class Settings(BaseModel):
    default_provider: ModelProvider = ModelProvider.GEMINI_INTL
    providers: Dict[ModelProvider, ProviderConfig] = Field(default_factory=dict)
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    def provider(self, provider: Optional[ModelProvider] = None) -> ProviderConfig:
        key = provider or self.default_provider
        try:
            return self.providers[key]
        except KeyError:
            raise KeyError(f"Configuration for {key.value} not found.") from None


def load_provider_configs(env: Mapping[str, str]) -> Dict[ModelProvider, ProviderConfig]:
    timeout = float(env.get("LLM_TIMEOUT") or 60)
    return {
        ModelProvider.GEMINI_INTL: ProviderConfig(
            provider=ModelProvider.GEMINI_INTL,
            name="Google Gemini",
            model=env.get("GEMINI_MODEL") or "gemini-3-flash-preview",
            complex_model=env.get("GEMINI_MODEL_COMPLEX") or "gemini-3-pro-preview",
            api_key=env.get("GEMINI_API_KEY") or env.get("GENAI_API_KEY"),
            timeout=timeout,
        ),
        ModelProvider.HUNYUAN_CN: ProviderConfig(
            provider=ModelProvider.HUNYUAN_CN,
            name="Tencent Hunyuan",
            base_url=env.get("HUNYUAN_BASE_URL") or "https://api.hunyuan.cloud.tencent.com/v1",
            model=env.get("HUNYUAN_MODEL") or "hunyuan-pro",
            api_key=env.get("HUNYUAN_API_KEY"),
            timeout=timeout,
        ),
        ModelProvider.ALIYUN_CN: ProviderConfig(
            provider=ModelProvider.ALIYUN_CN,
            name="Aliyun Qwen",
            base_url=env.get("ALIYUN_BASE_URL") or "https://dashscope.aliyuncs.com/compatible-mode/v1",
            model=env.get("ALIYUN_MODEL") or "qwen-max",
            api_key=env.get("ALIYUN_API_KEY") or env.get("DASHSCOPE_API_KEY"),
            timeout=timeout,
        ),
    }


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from `env`, or from os.environ after loading .env.
    """
    if env is None:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        env = os.environ

    log_dir = env.get("LOG_DIR")
    return Settings(
        default_provider=ModelProvider(env.get("QUANTMIND_PROVIDER") or ModelProvider.GEMINI_INTL.value),
        providers=load_provider_configs(env),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        log_dir=Path(log_dir) if log_dir else None,
    )
