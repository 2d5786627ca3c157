"""
LLM clients that produce the raw text the JSON recovery parser consumes.

- OpenAICompatibleClient: chat-completions over httpx (Hunyuan, Aliyun DashScope)
- GeminiLLMClient: google-genai SDK

Both expose: async generate(prompt, ...) -> str
Both raise LLMUnavailable when the provider cannot be reached or answers with
an error, so callers can tell "could not reach the service" apart from "the
service answered but its answer could not be understood".

Each generate() call makes exactly one attempt; retrying is the caller's
decision.
"""

from typing import Any, Dict, List, Optional
import logging

import httpx
from google import genai  # type: ignore
from google.genai import types  # type: ignore

from quantmind.config import ModelProvider, ProviderConfig


logger = logging.getLogger("quantmind.llm")


class LLMUnavailable(Exception):
    """The model provider could not be reached or returned an error."""

    def __init__(self, message: str, provider: Optional[ModelProvider] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    text = response.text
    try:
        body = response.json()
    except ValueError:
        return text or f"API Error ({response.status_code})"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return text or f"API Error ({response.status_code})"


class OpenAICompatibleClient:
    """
    HTTP client for OpenAI-compatible chat-completions endpoints
    """

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.base_url:
            raise ValueError(f"{config.name}: base_url is required for an OpenAI-compatible provider")
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=config.timeout, transport=transport)

    def _build_body(
        self,
        prompt: str,
        system: Optional[str],
        json_mode: bool,
        complex_task: bool,
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        body: Dict[str, Any] = {
            "model": (self.config.complex_model if complex_task else None) or self.config.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        if self.config.provider == ModelProvider.HUNYUAN_CN:
            body["enable_enhancement"] = True
        elif self.config.provider == ModelProvider.ALIYUN_CN:
            body["enable_search"] = True
        return body

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        complex_task: bool = False,
        max_tokens: int = 3000,
        temperature: float = 0.7,
    ) -> str:
        """
        Send one chat-completions request and return the first choice's text.
        """
        provider = self.config.provider
        if not self.config.api_key:
            raise LLMUnavailable(f"{self.config.name}: API key not configured", provider=provider)

        url = f"{self.base_url}/chat/completions"
        body = self._build_body(prompt, system, json_mode, complex_task, max_tokens, temperature)
        logger.info("%s: POST %s model=%s json_mode=%s", self.config.name, url, body["model"], json_mode)

        try:
            response = await self.client.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("%s: request failed: %s", self.config.name, exc)
            raise LLMUnavailable(f"{self.config.name}: {exc}", provider=provider) from exc

        if response.status_code >= 400:
            detail = _error_message(response)
            logger.warning("%s: error status=%s detail=%s", self.config.name, response.status_code, detail)
            raise LLMUnavailable(
                f"Model Provider Error: {detail}",
                provider=provider,
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMUnavailable(
                f"{self.config.name}: unexpected completion payload",
                provider=provider,
                status_code=response.status_code,
            ) from exc
        return content or ""

    async def aclose(self) -> None:
        await self.client.aclose()


class GeminiLLMClient:
    """
    Gemini client over the google-genai SDK.
    """

    def __init__(self, config: ProviderConfig, client: Any = None):
        self.config = config
        self.client = client
        if self.client is None and config.api_key:
            self.client = genai.Client(api_key=config.api_key)
            logger.info("Using google-genai SDK for Gemini LLM client.")

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        complex_task: bool = False,
        max_tokens: int = 3000,
        temperature: float = 0.7,
    ) -> str:
        provider = self.config.provider
        if self.client is None:
            raise LLMUnavailable(
                "Gemini API key not provided. Set GEMINI_API_KEY.",
                provider=provider,
            )

        model = (self.config.complex_model if complex_task else None) or self.config.model
        config = types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=max_tokens,
            temperature=temperature,
            response_mime_type="application/json" if json_mode else None,
        )
        logger.info("Gemini: generate_content model=%s json_mode=%s", model, json_mode)

        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=prompt,
                config=config,
            )
        except Exception as exc:
            # the SDK raises its own error types plus transport errors
            logger.exception("Gemini generate() failed: %s", exc)
            raise LLMUnavailable(f"Gemini: {exc}", provider=provider) from exc

        text = getattr(response, "text", None)
        if text:
            return text

        candidates = getattr(response, "candidates", None) or []
        for cand in candidates:
            content = getattr(cand, "content", None)
            for part in getattr(content, "parts", None) or []:
                if getattr(part, "text", None):
                    return part.text
        return ""

    async def aclose(self) -> None:
        return None


def build_llm_client(config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Pick the client implementation for a provider."""
    if config.provider == ModelProvider.GEMINI_INTL:
        return GeminiLLMClient(config)
    return OpenAICompatibleClient(config, transport=transport)
