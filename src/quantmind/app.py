"""
quantmind/app.py

FastAPI application for QuantMind
Exposes JSON recovery for raw model output and a market-analysis endpoint
that calls the configured model provider.
"""

from typing import Any, Dict, Optional
import os

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from quantmind import __version__
from quantmind.agent.analyst import MarketAnalyst
from quantmind.agent.normalizer import normalize_scores
from quantmind.clients.llm_client import LLMUnavailable, build_llm_client
from quantmind.config import ModelProvider, Settings, load_settings
from quantmind.guards.json_clean import LLMJsonError, UnrecoverableSyntax, recover_json
from quantmind.logging_config import get_logger, setup_logging
from quantmind.schemas.api_models import (
    AnalysisResult,
    AnalyzeRequest,
    ParseErrorDetail,
    ParseRequest,
    ParseResponse,
)


logger = get_logger("quantmind.app")

UNREADABLE_ANSWER = "The service responded but its answer could not be understood."
UNREACHABLE_SERVICE = "The service could not be reached."


def _parse_error_detail(exc: LLMJsonError) -> Dict[str, Any]:
    return ParseErrorDetail(
        code=exc.code.value,
        message=exc.message,
        user_message=UNREADABLE_ANSWER,
        likely_truncated=getattr(exc, "likely_truncated", False),
    ).model_dump()


def create_app(settings: Optional[Settings] = None, clients: Optional[Dict[ModelProvider, Any]] = None) -> FastAPI:
    """
    Build the application.

    `clients` maps providers to ready LLM clients; providers not listed get a
    client built on startup when their API key is configured.
    """
    settings = settings or load_settings()
    setup_logging(settings.log_dir, settings.log_level)

    app = FastAPI(title="QuantMind", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.llm_clients = dict(clients or {})

    @app.on_event("startup")
    async def startup_event():
        """
        Create LLM clients for every configured provider that was not injected.
        """
        for provider, config in settings.providers.items():
            if provider in app.state.llm_clients:
                continue
            if not config.configured:
                logger.warning("%s: no API key configured; provider disabled", config.name)
                continue
            app.state.llm_clients[provider] = build_llm_client(config)
            logger.info("Startup: %s client ready (model=%s)", config.name, config.model)

        logger.info(
            "QuantMind started. default_provider=%s providers=%s",
            settings.default_provider.value,
            [p.value for p in app.state.llm_clients],
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        for provider, client in app.state.llm_clients.items():
            try:
                await client.aclose()
            except Exception as e:
                logger.exception("Error closing %s client: %s", provider.value, e)
        logger.info("QuantMind shutdown complete.")

    @app.get("/")
    async def root():
        return {"message": "QuantMind API", "status": "running"}

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy"}

    @app.post("/api/parse", response_model=ParseResponse)
    async def parse_text(request: ParseRequest):
        """
        Recover a JSON value from raw model text. Deterministic; no LLM call.
        """
        logger.info("API Request: POST /api/parse | len=%d", len(request.text))
        result = recover_json(request.text)
        if not result.ok:
            raise HTTPException(status_code=422, detail=_parse_error_detail(result.error))

        data = normalize_scores(result.data) if request.normalize_scores else result.data
        return ParseResponse(data=data, source=result.source, applied=result.applied)

    @app.post("/api/analyze", response_model=AnalysisResult)
    async def analyze(request: AnalyzeRequest):
        provider = request.provider or settings.default_provider
        logger.info(
            "API Request: POST /api/analyze | provider=%s structured=%s market=%s",
            provider.value,
            request.structured,
            request.market.value,
        )

        try:
            config = settings.provider(provider)
        except KeyError as e:
            raise HTTPException(status_code=400, detail=e.args[0])

        client = app.state.llm_clients.get(provider)
        if client is None:
            raise HTTPException(status_code=400, detail=f"{config.name} is not configured")
        logger.info("Analyze: using %s model=%s", config.name, config.model)

        analyst = MarketAnalyst(client, provider)
        try:
            return await analyst.analyze(
                request.prompt,
                structured=request.structured,
                market=request.market,
                complex_task=request.complex_task,
            )
        except LLMUnavailable as e:
            raise HTTPException(
                status_code=502,
                detail={
                    "code": "llm_unavailable",
                    "message": e.message,
                    "user_message": UNREACHABLE_SERVICE,
                    "status_code": e.status_code,
                },
            )
        except LLMJsonError as e:
            if isinstance(e, UnrecoverableSyntax):
                logger.warning("Analyze: unreadable answer (passes=%s)", e.applied)
            raise HTTPException(status_code=422, detail=_parse_error_detail(e))
        except Exception as e:
            logger.exception("Error in /api/analyze: %s", e)
            raise HTTPException(status_code=500, detail=str(e))

    return app


def run() -> None:
    uvicorn.run(
        "quantmind.app:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
