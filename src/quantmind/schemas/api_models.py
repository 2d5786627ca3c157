from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from quantmind.config import MarketType, ModelProvider


class ParseRequest(BaseModel):
    text: str
    # scale fraction scores (0.65) to percentages (65)
    normalize_scores: bool = False


class ParseResponse(BaseModel):
    data: Any = None
    source: str  # 'raw' | 'repaired'
    applied: List[str] = []


class ParseErrorDetail(BaseModel):
    code: str
    message: str
    user_message: str
    likely_truncated: bool = False


class AnalyzeRequest(BaseModel):
    prompt: str
    provider: Optional[ModelProvider] = None  # defaults to Settings.default_provider
    structured: bool = False
    market: MarketType = MarketType.CN
    complex_task: bool = False


class AnalysisResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    content: str
    timestamp: int  # epoch milliseconds
    model_used: ModelProvider
    is_structured: bool = False
    structured_data: Optional[Any] = None
    market: MarketType = MarketType.CN
    meta: Optional[Dict[str, Any]] = None
