"""End-to-end investigation pipeline tests with an in-memory bank and a scripted model."""

import asyncio
import json

from investigator.analytics.analytical_engine import AnalyticalEngine
from investigator.data.aggregator import ContextAggregator
from investigator.graph.exchange_loop import AgenticExchangeLoop
from investigator.llm.gateway import ErrorCategory, LlmGatewayError
from investigator.models import Role
from investigator.narrative_merge import CONTRADICTION_NOTE, NARRATIVE_UNAVAILABLE
from investigator.orchestrator import InvestigationOrchestrator
from investigator.schemas import RiskLevel

from support import NARRATIVE_JSON, FakeBankClient, ScriptedGateway, make_alert, openai_text


def _orchestrator(bank_client, gateway, audit_log_path=None):
    return InvestigationOrchestrator(
        aggregator=ContextAggregator(bank_client),
        exchange_loop=AgenticExchangeLoop(gateway),
        audit_log_path=audit_log_path,
        model_name="test-model",
    )


def _expected_analysis(bank_client):
    context = asyncio.run(ContextAggregator(bank_client).build_context(make_alert()))
    return AnalyticalEngine().analyze(context)


def _assert_deterministic(response, analysis):
    assert response.evidence == analysis.evidence
    assert response.false_positive_score == analysis.false_positive_score
    assert response.false_positive_likelihood == analysis.false_positive_likelihood
    assert response.confidence_score == analysis.confidence_score


class TestAnalyzeAlert:

    def test_narrative_is_merged_over_deterministic_analysis(self, bank_client):
        gateway = ScriptedGateway(openai_text(json.dumps(NARRATIVE_JSON)))

        response = asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))

        _assert_deterministic(response, _expected_analysis(bank_client))
        assert response.narrative_source == "llm"
        assert response.narrative_error is None
        assert response.narrative_summary == NARRATIVE_JSON["narrativeSummary"]
        assert response.recommended_action.action == "Close"

    def test_prompt_is_sent_as_system_message_without_tools(self, bank_client):
        gateway = ScriptedGateway(openai_text(json.dumps(NARRATIVE_JSON)))

        asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))

        assert len(gateway.calls) == 1
        call = gateway.calls[0]
        assert call["tools"] is None
        assert call["messages"][0].role == Role.SYSTEM
        assert "ANALYTICAL SIGNALS" in call["messages"][0].content

    def test_gateway_failure_falls_back(self, bank_client):
        gateway = ScriptedGateway(LlmGatewayError("connection refused", ErrorCategory.CONNECTION))

        response = asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))

        _assert_deterministic(response, _expected_analysis(bank_client))
        assert response.narrative_source == "fallback"
        assert response.narrative_summary == NARRATIVE_UNAVAILABLE
        assert response.narrative_error.startswith("LlmGatewayError")
        assert response.evidence_matrix[0].signal == "Deterministic Engine Evaluation"

    def test_malformed_narrative_falls_back(self, bank_client):
        gateway = ScriptedGateway(openai_text("I'm unable to produce JSON today."))

        response = asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))

        _assert_deterministic(response, _expected_analysis(bank_client))
        assert response.narrative_source == "fallback"
        assert response.narrative_error.startswith("ResponseParseError")

    def test_malformed_field_falls_back_alone(self, bank_client):
        narrative = dict(NARRATIVE_JSON, confidence={"score": "high", "justification": "Complete data"})
        gateway = ScriptedGateway(openai_text(json.dumps(narrative)))

        response = asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))

        assert response.narrative_source == "llm"
        assert response.narrative_summary == NARRATIVE_JSON["narrativeSummary"]
        assert response.recommended_action.action == "Close"
        assert response.alert_risk_posture == "Low"
        assert response.confidence_justification.startswith("High confidence")
        assert "confidence" in response.narrative_error

    def test_reasoning_is_folded_into_summary(self, bank_client):
        text = "<thinking>Amount sits inside the usual range.</thinking>" + json.dumps(NARRATIVE_JSON)
        gateway = ScriptedGateway(openai_text(text))

        response = asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))

        assert response.narrative_summary.startswith("[Analyst Reasoning]\nAmount sits inside the usual range.")
        assert response.narrative_summary.endswith(NARRATIVE_JSON["narrativeSummary"])

    def test_unknown_alert_still_produces_a_response(self):
        gateway = ScriptedGateway(openai_text(json.dumps(NARRATIVE_JSON)))

        response = asyncio.run(_orchestrator(FakeBankClient(), gateway).analyze_alert(make_alert(id=404)))

        assert response.false_positive_score == 0.0
        assert response.false_positive_likelihood == RiskLevel.HIGH
        assert response.narrative_source == "llm"


class TestGovernance:

    def test_high_posture_against_high_likelihood(self):
        narrative = dict(NARRATIVE_JSON, alertRiskPosture="High")
        gateway = ScriptedGateway(openai_text(json.dumps(narrative)))

        response = asyncio.run(_orchestrator(FakeBankClient(), gateway).analyze_alert(make_alert()))

        assert response.false_positive_likelihood == RiskLevel.HIGH
        assert response.alert_risk_posture == "High"
        assert response.contradictions == [CONTRADICTION_NOTE]

    def test_consistent_narrative_has_no_note(self, bank_client):
        gateway = ScriptedGateway(openai_text(json.dumps(NARRATIVE_JSON)))
        response = asyncio.run(_orchestrator(bank_client, gateway).analyze_alert(make_alert()))
        assert response.contradictions == []


class TestAuditLog:

    def test_one_record_per_investigation(self, bank_client, tmp_path):
        path = tmp_path / "audit" / "investigations.jsonl"
        gateway = ScriptedGateway(
            openai_text(json.dumps(NARRATIVE_JSON)),
            LlmGatewayError("rate limited", ErrorCategory.RATE_LIMIT),
        )
        orchestrator = _orchestrator(bank_client, gateway, audit_log_path=path)

        first = asyncio.run(orchestrator.analyze_alert(make_alert()))
        second = asyncio.run(orchestrator.analyze_alert(make_alert()))

        records = [json.loads(line) for line in path.read_text().splitlines()]
        assert [r["investigation_id"] for r in records] == [first.investigation_id, second.investigation_id]
        assert records[0]["alert_id"] == 1
        assert records[0]["narrative_meta"]["ok"] is True
        assert records[0]["narrative_meta"]["model"] == "test-model"
        assert records[1]["narrative_meta"]["category"] == "rate_limit"
        assert records[1]["response"]["narrativeSource"] == "fallback"
        assert "falsePositiveScore" in records[1]["analysis"]

    def test_unwritable_audit_log_does_not_lose_the_response(self, bank_client, tmp_path):
        path = tmp_path / "audit_dir"
        path.mkdir()
        gateway = ScriptedGateway(openai_text(json.dumps(NARRATIVE_JSON)))

        response = asyncio.run(_orchestrator(bank_client, gateway, audit_log_path=path).analyze_alert(make_alert()))

        assert response.narrative_source == "llm"
        assert response.narrative_summary == NARRATIVE_JSON["narrativeSummary"]
