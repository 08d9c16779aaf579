"""
Merge deterministic analysis with the (optional) model narrative.

Deterministic fields are copied verbatim and never edited afterwards. Each
narrative field falls back to a rule-based value when the model did not
supply it. The governance check runs after every merge.
"""
from __future__ import annotations

from typing import List, Optional

from investigator.analytics.analytical_engine import AnalyticalResult
from investigator.schemas import (
    BehaviouralComparison,
    EvidenceMatrixItem,
    InvestigationResponse,
    LlmAnalysisResponse,
    RecommendedAction,
    RiskLevel,
)

NARRATIVE_UNAVAILABLE = "Narrative unavailable"
CONTRADICTION_NOTE = "Narrative risk posture conflicts with deterministic false positive likelihood."

HIGH_CONFIDENCE_PCT = 80
MODERATE_CONFIDENCE_PCT = 50


def _confidence_pct(analysis: AnalyticalResult) -> float:
    return analysis.confidence_score * 100


# -------------------------
# Rule-based fallbacks
# -------------------------

def derive_risk_posture(analysis: Optional[AnalyticalResult]) -> str:
    if analysis is None:
        return "Unknown"
    pct = _confidence_pct(analysis)
    if pct >= HIGH_CONFIDENCE_PCT:
        return "High"
    if pct >= MODERATE_CONFIDENCE_PCT:
        return "Moderate"
    return "Low"


def derive_risk_impact(analysis: Optional[AnalyticalResult]) -> str:
    if analysis is None:
        return "Medium"
    pct = _confidence_pct(analysis)
    if pct >= HIGH_CONFIDENCE_PCT:
        return "High"
    if pct >= MODERATE_CONFIDENCE_PCT:
        return "Medium"
    return "Low"


def build_fallback_evidence_matrix(analysis: Optional[AnalyticalResult]) -> List[EvidenceMatrixItem]:
    return [
        EvidenceMatrixItem(
            signal="Deterministic Engine Evaluation",
            observation="Evidence generated using analytical scoring engines.",
            risk_impact=derive_risk_impact(analysis),
        )
    ]


def build_fallback_behaviour_comparison() -> BehaviouralComparison:
    return BehaviouralComparison(
        amount_deviation="Behavioural deviation analysis unavailable due to narrative engine limitations.",
        channel_consistency="Channel consistency assessment unavailable.",
        activity_consistency="Activity consistency evaluation unavailable.",
    )


def build_fallback_action(analysis: Optional[AnalyticalResult]) -> RecommendedAction:
    if analysis is None:
        return RecommendedAction(
            action="Review",
            rationale="Automated recommendation unavailable. Analyst review required.",
        )

    if _confidence_pct(analysis) >= HIGH_CONFIDENCE_PCT:
        return RecommendedAction(
            action="Escalate",
            rationale="High analytical confidence with elevated risk indicators.",
        )

    if analysis.false_positive_likelihood == RiskLevel.HIGH:
        return RecommendedAction(
            action="Review",
            rationale="High false positive likelihood requires analyst validation.",
        )

    return RecommendedAction(
        action="Review",
        rationale="Default conservative action due to narrative engine unavailability.",
    )


def build_fallback_confidence_statement(analysis: Optional[AnalyticalResult]) -> str:
    if analysis is None:
        return "Confidence assessment unavailable due to analytical evaluation failure."
    pct = _confidence_pct(analysis)
    if pct >= HIGH_CONFIDENCE_PCT:
        return "High confidence derived from deterministic analytical evidence scoring."
    if pct >= MODERATE_CONFIDENCE_PCT:
        return "Moderate confidence. Further analyst validation recommended."
    return "Low confidence. Manual investigation required."


# -------------------------
# Merge + governance
# -------------------------

def merge_results(
    analysis: AnalyticalResult,
    narrative: Optional[LlmAnalysisResponse],
    narrative_error: Optional[str] = None,
) -> InvestigationResponse:
    llm = narrative or LlmAnalysisResponse()

    justification = llm.confidence.justification if llm.confidence else None

    return InvestigationResponse(
        # deterministic truth (never overridden)
        evidence=analysis.evidence,
        false_positive_score=analysis.false_positive_score,
        false_positive_likelihood=analysis.false_positive_likelihood,
        confidence_score=analysis.confidence_score,

        narrative_summary=llm.narrative_summary or NARRATIVE_UNAVAILABLE,
        alert_risk_posture=llm.alert_risk_posture or derive_risk_posture(analysis),
        evidence_matrix=llm.evidence_matrix if llm.evidence_matrix is not None else build_fallback_evidence_matrix(analysis),
        behavioural_comparison=llm.behavioural_comparison or build_fallback_behaviour_comparison(),
        contradictions=list(llm.contradictions or []),
        recommended_action=llm.recommended_action or build_fallback_action(analysis),
        confidence_justification=justification or build_fallback_confidence_statement(analysis),

        narrative_source="llm" if narrative is not None else "fallback",
        narrative_error=narrative_error,
    )


def validate_narrative_consistency(response: InvestigationResponse, analysis: Optional[AnalyticalResult]) -> InvestigationResponse:
    """Governance shield: flag a "High" narrative posture against a High false-positive likelihood."""
    if analysis is None:
        return response

    posture = (response.alert_risk_posture or "").strip().casefold()
    if posture == "high" and analysis.false_positive_likelihood == RiskLevel.HIGH:
        if CONTRADICTION_NOTE not in response.contradictions:
            response.contradictions.append(CONTRADICTION_NOTE)

    return response
