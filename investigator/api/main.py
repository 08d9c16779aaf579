"""
FastAPI backend for the alert investigator.
Runs investigations on alerts and serves follow-up chat about them.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from investigator.chat.chat_service import ChatService
from investigator.config.log_setup import configure_logging
from investigator.config.settings import Settings, load_settings
from investigator.data.bank_client import BankDataClient
from investigator.llm.gateway import OpenAIGateway
from investigator.models import Alert, CamelModel
from investigator.orchestrator import InvestigationOrchestrator
from investigator.schemas import InvestigationResponse, StructuredChatResponse

logger = logging.getLogger("investigator.api")


# -------------------------
# Shared services (one per process)
# -------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_bank_client() -> BankDataClient:
    return BankDataClient.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_gateway() -> OpenAIGateway:
    return OpenAIGateway.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_orchestrator() -> InvestigationOrchestrator:
    return InvestigationOrchestrator.from_settings(get_settings(), get_bank_client(), get_gateway())


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    return ChatService.from_settings(get_settings(), get_bank_client(), get_gateway())


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().log_level)
    logger.info("Alert investigator API starting")

    yield

    if get_bank_client.cache_info().currsize:
        await get_bank_client().aclose()
    if get_gateway.cache_info().currsize:
        await get_gateway().aclose()
    logger.info("Alert investigator API stopped")


app = FastAPI(
    title="AML Alert Investigator",
    description="Deterministic alert scoring with LLM narrative enrichment and follow-up chat.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# -------------------------
# Request models
# -------------------------

class AnalyzeRequest(CamelModel):
    alert: Alert


class ChatRequest(CamelModel):
    session_id: Optional[str] = None
    content: str
    initial_context: Optional[InvestigationResponse] = None


# -------------------------
# Middleware
# -------------------------

@app.middleware("http")
async def audit_requests(request: Request, call_next):
    """Log every request and its outcome with a trace id."""
    trace_id = request.headers.get("X-Trace-Id") or str(uuid.uuid4())
    request.state.trace_id = trace_id
    start = time.perf_counter()

    logger.info(
        "Incoming request",
        extra={"trace_id": trace_id, "method": request.method, "path": request.url.path},
    )

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "Unhandled exception",
            extra={"trace_id": trace_id, "method": request.method, "path": request.url.path},
        )
        raise

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers["X-Trace-Id"] = trace_id

    logger.info(
        "Request completed",
        extra={
            "trace_id": trace_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


# -------------------------
# Endpoints
# -------------------------

@app.get("/")
def root():
    return {"service": "aml-alert-investigator", "status": "ok"}


@app.post("/api/investigations/analyze", response_model=InvestigationResponse)
async def analyze_alert(
    body: AnalyzeRequest,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.analyze_alert(body.alert)


@app.post("/api/chat/complete", response_model=StructuredChatResponse)
async def complete_chat(
    body: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    return await chat_service.process_chat_turn(
        body.content,
        session_id=body.session_id,
        initial_context=body.initial_context,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
