from __future__ import annotations

import logging
import uuid
from typing import Any, List, Optional

from pydantic import ValidationError

from investigator.chat.session_store import SessionStore
from investigator.config.settings import Settings
from investigator.graph.exchange_loop import AgenticExchangeLoop
from investigator.llm.prompt_builder import PromptBuilder
from investigator.models import LlmMessage, Role
from investigator.schemas import InvestigationResponse, StructuredChatResponse
from investigator.tools.base import ToolRegistry
from investigator.tools.sample_tools import default_tool_registry

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE_TEXT = (
    "NEXA is unable to provide an answer due to insufficient data "
    "or lack of permissions to analyze this request."
)


class ChatResponseError(ValueError):
    """The model's chat output does not fit the chat response schema."""


def fallback_response(session_id: Optional[str]) -> StructuredChatResponse:
    return StructuredChatResponse(
        session_id=session_id,
        response_type="General",
        response=FALLBACK_RESPONSE_TEXT,
        evidence_reference=[],
        confidence_statement="Not Available",
    )


class ChatService:
    """
    Follow-up conversation about a finished investigation.

    First turn of a session: seed with the follow-up system prompt built from
    the prior investigation. Later turns: replay the cached history. Only
    successful turns are cached; any failure returns the fixed fallback.
    """

    def __init__(
        self,
        exchange_loop: AgenticExchangeLoop,
        tools: Optional[ToolRegistry] = None,
        sessions: Optional[SessionStore] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.exchange_loop = exchange_loop
        self.tools = tools
        self.sessions = sessions or SessionStore()
        self.prompt_builder = prompt_builder or PromptBuilder()

    @classmethod
    def from_settings(cls, settings: Settings, bank_client: Any, gateway: Any) -> "ChatService":
        return cls(
            exchange_loop=AgenticExchangeLoop(gateway),
            tools=default_tool_registry(bank_client, settings),
            sessions=SessionStore(
                ttl_seconds=settings.chat_session_ttl_seconds,
                max_sessions=settings.chat_max_sessions,
            ),
        )

    async def process_chat_turn(
        self,
        content: str,
        session_id: Optional[str] = None,
        initial_context: Optional[InvestigationResponse] = None,
    ) -> StructuredChatResponse:
        sid = (session_id or "").strip() or str(uuid.uuid4())

        try:
            return await self._run_turn(sid, content, initial_context)
        except Exception as e:
            logger.warning(
                "Chat turn failed, returning fallback: %s: %s",
                type(e).__name__, e,
                extra={"session_id": sid},
            )
            return fallback_response(sid)

    async def _run_turn(
        self,
        sid: str,
        content: str,
        initial_context: Optional[InvestigationResponse],
    ) -> StructuredChatResponse:
        if not content or not content.strip():
            raise ChatResponseError("Chat content is empty")

        history = self.sessions.get(sid)

        messages: List[LlmMessage] = list(history) if history else []
        if not messages:
            tool_names = self.tools.names() if self.tools else None
            seed = self.prompt_builder.build_follow_up_prompt(initial_context, tool_names)
            messages.append(LlmMessage(role=Role.SYSTEM, content=seed))

        messages.append(LlmMessage(role=Role.USER, content=content))

        result = await self.exchange_loop.run(messages, tools=self.tools, narrative_field="response")
        if result.payload is None:
            raise ChatResponseError(f"Chat output unparseable: {result.parse_error}")

        # nulls from the model fall back to schema defaults
        cleaned = {k: v for k, v in result.payload.items() if v is not None}
        cleaned.pop("sessionId", None)
        cleaned.pop("session_id", None)
        try:
            parsed = StructuredChatResponse.model_validate(cleaned)
        except ValidationError as e:
            raise ChatResponseError(f"Chat output does not match schema: {e.error_count()} error(s)") from e

        response = parsed.model_copy(update={"session_id": sid})

        messages.append(LlmMessage(
            role=Role.ASSISTANT,
            content=response.model_dump_json(by_alias=True, exclude={"session_id"}),
        ))
        self.sessions.set(sid, messages)

        return response
