"""
agent/analyst.py

MarketAnalyst: the one path from a prompt to a typed view-model.

prompt -> LLM client -> raw text -> parse_llm_json -> normalize_scores -> AnalysisResult

Transport failures surface as LLMUnavailable, unreadable answers as
LLMJsonError. Neither is retried here.
"""

from typing import Any, Iterable, Optional
import logging
import time

from quantmind.agent.normalizer import SCORE_FIELDS, normalize_scores
from quantmind.config import MarketType, ModelProvider
from quantmind.guards.json_clean import recover_json
from quantmind.schemas.api_models import AnalysisResult


logger = logging.getLogger("quantmind.app.analyst")

STRUCTURED_SYSTEM_PROMPT = "You are a helpful assistant that outputs strictly structured JSON data."


class MarketAnalyst:
    def __init__(self, llm_client: Any, provider: ModelProvider, score_fields: Iterable[str] = SCORE_FIELDS):
        self.llm_client = llm_client
        self.provider = provider
        self.score_fields = frozenset(score_fields)

    async def analyze(
        self,
        prompt: str,
        structured: bool = False,
        market: MarketType = MarketType.CN,
        complex_task: bool = False,
        system: Optional[str] = None,
    ) -> AnalysisResult:
        """
        Ask the provider and, for structured requests, recover the JSON payload.

        Raises LLMUnavailable when the provider cannot be reached and
        EmptyInput / UnrecoverableSyntax when a structured reply cannot be read.
        """
        if structured and system is None:
            system = STRUCTURED_SYSTEM_PROMPT

        logger.info(
            "Analyst: provider=%s structured=%s market=%s prompt_len=%d",
            self.provider.value,
            structured,
            market.value,
            len(prompt),
        )
        content = await self.llm_client.generate(
            prompt,
            system=system,
            json_mode=structured,
            complex_task=complex_task,
        )

        structured_data = None
        meta = None
        if structured:
            result = recover_json(content)
            if not result.ok:
                logger.warning("Analyst: structured reply unreadable: %s", result.error)
                raise result.error
            structured_data = normalize_scores(result.data, self.score_fields)
            meta = {"source": result.source, "applied": result.applied}

        return AnalysisResult(
            content=content,
            timestamp=int(time.time() * 1000),
            model_used=self.provider,
            is_structured=structured,
            structured_data=structured_data,
            market=market,
            meta=meta,
        )
