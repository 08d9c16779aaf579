"""Tests for follow-up chat sessions: seeding, history replay, tools and fallbacks."""

import asyncio
import json

import pytest

from investigator.chat.chat_service import FALLBACK_RESPONSE_TEXT, ChatService
from investigator.chat.session_store import SessionStore
from investigator.graph.exchange_loop import AgenticExchangeLoop
from investigator.llm.gateway import ErrorCategory, LlmGatewayError
from investigator.models import Role
from investigator.schemas import EvidenceResult, EvidenceStrength, InvestigationResponse, RiskLevel
from investigator.tools.base import ToolRegistry
from investigator.tools.sample_tools import AccountLookupTool

from support import CHAT_JSON, ScriptedGateway, openai_text, openai_tool_calls

INITIAL = InvestigationResponse(
    investigation_id="inv-42",
    evidence=EvidenceResult(beneficiary_risk=EvidenceStrength.STRONG),
    false_positive_score=0.2,
    false_positive_likelihood=RiskLevel.HIGH,
    confidence_score=0.7,
)


def _service(gateway, tools=None, sessions=None):
    return ChatService(AgenticExchangeLoop(gateway), tools=tools, sessions=sessions)


def _turn(service, content, session_id=None, initial_context=None):
    return asyncio.run(service.process_chat_turn(content, session_id=session_id, initial_context=initial_context))


class TestFirstTurn:

    def test_new_session_id_and_system_seed(self):
        gateway = ScriptedGateway(openai_text(json.dumps(CHAT_JSON)))
        service = _service(gateway)

        response = _turn(service, "Why is this a false positive?", initial_context=INITIAL)

        assert response.session_id
        assert response.response == CHAT_JSON["response"]
        assert response.response_type == "Analysis"
        assert response.evidence_reference == ["Transaction Pattern Consistency"]

        sent = gateway.calls[0]["messages"]
        assert [m.role for m in sent] == [Role.SYSTEM, Role.USER]
        assert "IMMUTABLE FACTS (DO NOT MODIFY)" in sent[0].content
        assert "inv-42" in sent[0].content
        assert sent[1].content == "Why is this a false positive?"

    def test_given_session_id_is_kept(self):
        gateway = ScriptedGateway(openai_text(json.dumps(CHAT_JSON)))
        response = _turn(_service(gateway), "hello", session_id="abc")
        assert response.session_id == "abc"

    def test_model_supplied_session_id_is_ignored(self):
        payload = dict(CHAT_JSON, sessionId="from-model")
        gateway = ScriptedGateway(openai_text(json.dumps(payload)))
        response = _turn(_service(gateway), "hello", session_id="abc")
        assert response.session_id == "abc"

    def test_null_fields_use_defaults(self):
        payload = {"response": "Short answer.", "responseType": None, "evidenceReference": None}
        gateway = ScriptedGateway(openai_text(json.dumps(payload)))
        response = _turn(_service(gateway), "hello")
        assert response.response == "Short answer."
        assert response.response_type == "General"
        assert response.evidence_reference == []

    def test_tool_names_listed_in_seed(self):
        gateway = ScriptedGateway(openai_text(json.dumps(CHAT_JSON)))
        _turn(_service(gateway, tools=ToolRegistry([AccountLookupTool()])), "hello")
        assert "AccountLookup" in gateway.calls[0]["messages"][0].content
        assert [s["name"] for s in gateway.calls[0]["tools"]] == ["AccountLookup"]


class TestHistory:

    def test_second_turn_replays_cached_history(self):
        second = dict(CHAT_JSON, response="Second answer.")
        gateway = ScriptedGateway(openai_text(json.dumps(CHAT_JSON)), openai_text(json.dumps(second)))
        service = _service(gateway)

        first = _turn(service, "first question", initial_context=INITIAL)
        reply = _turn(service, "second question", session_id=first.session_id)

        assert reply.response == "Second answer."
        sent = gateway.calls[1]["messages"]
        assert [m.role for m in sent] == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.USER]
        assert sent[1].content == "first question"
        assert json.loads(sent[2].content)["response"] == CHAT_JSON["response"]
        assert "sessionId" not in json.loads(sent[2].content)
        assert sent[3].content == "second question"

    def test_tool_exchange_is_not_cached(self):
        sessions = SessionStore()
        gateway = ScriptedGateway(
            openai_tool_calls(("AccountLookup", {"accountId": "ACC-1001"}, "call_1")),
            openai_text(json.dumps(CHAT_JSON)),
        )
        service = _service(gateway, tools=ToolRegistry([AccountLookupTool()]), sessions=sessions)

        response = _turn(service, "Who owns ACC-1001?", session_id="s1")

        assert response.response == CHAT_JSON["response"]
        assert len(gateway.calls) == 2
        history = sessions.get("s1")
        assert [m.role for m in history] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    def test_sessions_are_isolated(self):
        gateway = ScriptedGateway(openai_text(json.dumps(CHAT_JSON)), openai_text(json.dumps(CHAT_JSON)))
        service = _service(gateway)

        _turn(service, "one", session_id="a")
        _turn(service, "two", session_id="b")

        assert [m.role for m in gateway.calls[1]["messages"]] == [Role.SYSTEM, Role.USER]


class TestFallback:

    @pytest.mark.parametrize("outcome", [
        LlmGatewayError("connection refused", ErrorCategory.CONNECTION),
        openai_text("I cannot help with that."),
        openai_text(json.dumps({"response": ["not", "a", "string"]})),
    ])
    def test_failure_returns_fallback_and_caches_nothing(self, outcome):
        sessions = SessionStore()
        gateway = ScriptedGateway(outcome)

        response = _turn(_service(gateway, sessions=sessions), "hello", session_id="s1")

        assert response.session_id == "s1"
        assert response.response == FALLBACK_RESPONSE_TEXT
        assert response.response_type == "General"
        assert response.evidence_reference == []
        assert response.confidence_statement == "Not Available"
        assert sessions.get("s1") is None

    @pytest.mark.parametrize("content", ["", "   "])
    def test_blank_content_never_reaches_the_model(self, content):
        gateway = ScriptedGateway()
        response = _turn(_service(gateway), content)
        assert response.response == FALLBACK_RESPONSE_TEXT
        assert response.session_id
        assert gateway.calls == []

    def test_failed_turn_keeps_previous_history(self):
        sessions = SessionStore()
        gateway = ScriptedGateway(
            openai_text(json.dumps(CHAT_JSON)),
            LlmGatewayError("rate limited", ErrorCategory.RATE_LIMIT),
        )
        service = _service(gateway, sessions=sessions)

        _turn(service, "first", session_id="s1")
        _turn(service, "second", session_id="s1")

        assert len(sessions.get("s1")) == 3
