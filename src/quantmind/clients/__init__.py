"""
quantmind/clients

HTTP collaborators that turn a prompt into raw model text.
"""

from .llm_client import (  # noqa: F401
    GeminiLLMClient,
    LLMUnavailable,
    OpenAICompatibleClient,
    build_llm_client,
)
