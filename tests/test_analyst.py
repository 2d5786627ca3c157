"""Tests for MarketAnalyst: prompt -> raw text -> parsed, normalized result."""

import asyncio

import pytest

from quantmind.agent.analyst import STRUCTURED_SYSTEM_PROMPT, MarketAnalyst
from quantmind.clients.llm_client import LLMUnavailable
from quantmind.config import MarketType, ModelProvider
from quantmind.guards.json_clean import EmptyInput, UnrecoverableSyntax


REPLY = (
    "Here is the analysis:\n"
    "```json\n"
    '{"ticker": "0700", "confidence": 0.65, "signals": [{"energy_score": 0.8} {"energy_score": 55}]}\n'
    "```"
)


def test_structured_reply_is_parsed_and_normalized(make_llm_client):
    llm = make_llm_client(reply=REPLY)
    analyst = MarketAnalyst(llm, ModelProvider.HUNYUAN_CN)

    result = asyncio.run(analyst.analyze("Analyse 0700", structured=True, market=MarketType.HK))

    assert result.is_structured is True
    assert result.structured_data == {
        "ticker": "0700",
        "confidence": 65,
        "signals": [{"energy_score": 80}, {"energy_score": 55}],
    }
    assert result.content == REPLY
    assert result.model_used is ModelProvider.HUNYUAN_CN
    assert result.market is MarketType.HK
    assert result.meta == {"source": "repaired", "applied": ["comma_between_containers"]}
    assert result.timestamp > 0

    call = llm.calls[0]
    assert call["prompt"] == "Analyse 0700"
    assert call["json_mode"] is True
    assert call["system"] == STRUCTURED_SYSTEM_PROMPT
    assert call["complex_task"] is False


def test_plain_reply_is_passed_through(make_llm_client):
    llm = make_llm_client(reply="Market looks calm today.")
    analyst = MarketAnalyst(llm, ModelProvider.GEMINI_INTL)

    result = asyncio.run(analyst.analyze("Summarise", complex_task=True))

    assert result.is_structured is False
    assert result.structured_data is None
    assert result.meta is None
    assert result.content == "Market looks calm today."
    assert llm.calls[0]["json_mode"] is False
    assert llm.calls[0]["system"] is None
    assert llm.calls[0]["complex_task"] is True


def test_custom_system_prompt_is_kept(make_llm_client):
    llm = make_llm_client(reply='{"a": 1}')
    analyst = MarketAnalyst(llm, ModelProvider.ALIYUN_CN)
    asyncio.run(analyst.analyze("x", structured=True, system="Answer in JSON."))
    assert llm.calls[0]["system"] == "Answer in JSON."


def test_custom_score_fields(make_llm_client):
    llm = make_llm_client(reply='{"confidence": 0.65, "upside": 0.2}')
    analyst = MarketAnalyst(llm, ModelProvider.ALIYUN_CN, score_fields=["upside"])
    result = asyncio.run(analyst.analyze("x", structured=True))
    assert result.structured_data == {"confidence": 0.65, "upside": 20}


def test_unreadable_reply_raises(make_llm_client):
    analyst = MarketAnalyst(make_llm_client(reply="I cannot help with that."), ModelProvider.HUNYUAN_CN)
    with pytest.raises(UnrecoverableSyntax):
        asyncio.run(analyst.analyze("x", structured=True))


def test_empty_reply_raises(make_llm_client):
    analyst = MarketAnalyst(make_llm_client(reply=""), ModelProvider.HUNYUAN_CN)
    with pytest.raises(EmptyInput):
        asyncio.run(analyst.analyze("x", structured=True))


def test_unavailable_provider_propagates(make_llm_client):
    llm = make_llm_client(error=LLMUnavailable("down", provider=ModelProvider.HUNYUAN_CN, status_code=503))
    analyst = MarketAnalyst(llm, ModelProvider.HUNYUAN_CN)
    with pytest.raises(LLMUnavailable):
        asyncio.run(analyst.analyze("x", structured=True))
    assert len(llm.calls) == 1
