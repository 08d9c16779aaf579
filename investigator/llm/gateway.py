from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from investigator.config.prompts import DEFAULT_USER_INSTRUCTION
from investigator.config.settings import MAX_TOKENS, TEMPERATURE, Settings
from investigator.llm.response_parser import parse_final_text, parse_model_output
from investigator.models import LlmMessage, Role
from investigator.schemas import LlmAnalysisResponse

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    PROVIDER = "provider"
    UNKNOWN = "unknown"


class LlmGatewayError(RuntimeError):
    """The model call failed; ``category`` says roughly why."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        super().__init__(message)
        self.category = category


def categorize_exception(exc: BaseException) -> ErrorCategory:
    # APITimeoutError subclasses APIConnectionError; the status errors share APIStatusError
    if isinstance(exc, (openai.APIConnectionError, asyncio.TimeoutError)):
        return ErrorCategory.CONNECTION
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ErrorCategory.AUTHENTICATION
    if isinstance(exc, openai.RateLimitError):
        return ErrorCategory.RATE_LIMIT
    if isinstance(exc, openai.APIStatusError):
        return ErrorCategory.PROVIDER
    return ErrorCategory.UNKNOWN


# -------------------------
# Request shaping
# -------------------------

def to_openai_messages(messages: Sequence[LlmMessage]) -> List[Dict[str, str]]:
    out = [{"role": Role(m.role).value, "content": m.content} for m in messages]

    if not any(m["role"] != Role.SYSTEM.value for m in out):
        out.append({"role": Role.USER.value, "content": DEFAULT_USER_INSTRUCTION})

    return out


def to_openai_tools(specs: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Provider-neutral {name, description, input_schema} -> OpenAI function tools."""
    return [
        {
            "type": "function",
            "function": {
                "name": spec["name"],
                "description": spec.get("description", ""),
                "parameters": spec.get("input_schema") or {"type": "object", "properties": {}},
            },
        }
        for spec in specs
    ]


# -------------------------
# Gateway
# -------------------------

class OpenAIGateway:
    """
    Chat completions against any OpenAI-compatible endpoint (LM Studio by default).

    ``complete_chat`` returns the raw completion as JSON text; parsing belongs
    to the caller. Every client failure is re-raised as LlmGatewayError.
    """

    def __init__(
        self,
        client: Any,
        model: str,
        temperature: float = TEMPERATURE,
        max_tokens: int = MAX_TOKENS,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIGateway":
        client = AsyncOpenAI(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )
        return cls(
            client,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    async def complete_chat(
        self,
        messages: Sequence[LlmMessage],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            category = categorize_exception(e)
            logger.warning("LLM call failed (%s): %s", category.value, e)
            raise LlmGatewayError(f"{type(e).__name__}: {e}", category) from e

        raw = response.model_dump_json()
        logger.debug("LLM raw response: %s", raw[:3000])
        return raw

    async def analyze(self, messages: Sequence[LlmMessage]) -> Optional[LlmAnalysisResponse]:
        """
        One narrative round without tools; None when the output is not the narrative schema.

        Gateway-level narrative call for single-round callers. The investigation
        pipeline goes through AgenticExchangeLoop instead, which adds the tool round.
        """
        raw = await self.complete_chat(messages)
        final = parse_final_text(parse_model_output(raw).text, "narrativeSummary")
        if final.payload is None:
            logger.warning("Narrative output unparseable: %s", final.error)
            return None

        try:
            return LlmAnalysisResponse.model_validate(final.payload)
        except ValidationError as e:
            logger.warning("Narrative output does not match schema: %s", e)
            return None

    async def aclose(self) -> None:
        await self.client.close()
