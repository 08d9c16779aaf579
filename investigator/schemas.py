from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field

from investigator.models import CamelModel


# =========================
# Deterministic vocabulary
# =========================
class EvidenceStrength(IntEnum):
    """Ordinal support for "this alert is a false positive". Rank == int value."""

    NONE = 0
    WEAK = 1
    MODERATE = 2
    STRONG = 3

    @property
    def label(self) -> str:
        return self.name.title()


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    UNKNOWN = "Unknown"


class EvidenceResult(CamelModel):
    model_config = ConfigDict(frozen=True)

    transaction_pattern_consistency: EvidenceStrength = EvidenceStrength.NONE
    historical_behavior_alignment: EvidenceStrength = EvidenceStrength.NONE
    beneficiary_risk: EvidenceStrength = EvidenceStrength.NONE
    velocity_anomaly: EvidenceStrength = EvidenceStrength.NONE


# =========================
# Narrative JSON schema (what the model is asked to emit)
# =========================
class EvidenceMatrixItem(CamelModel):
    signal: Optional[str] = None
    observation: Optional[str] = None
    risk_impact: Optional[str] = None


class BehaviouralComparison(CamelModel):
    amount_deviation: Optional[str] = None
    channel_consistency: Optional[str] = None
    activity_consistency: Optional[str] = None


class RecommendedAction(CamelModel):
    action: Optional[str] = None
    rationale: Optional[str] = None


class ConfidenceBlock(CamelModel):
    score: Optional[float] = None
    justification: Optional[str] = None


class LlmAnalysisResponse(CamelModel):
    narrative_summary: Optional[str] = None
    alert_risk_posture: Optional[str] = None
    evidence_matrix: Optional[List[EvidenceMatrixItem]] = None
    behavioural_comparison: Optional[BehaviouralComparison] = None
    contradictions: Optional[List[str]] = None
    recommended_action: Optional[RecommendedAction] = None
    confidence: Optional[ConfidenceBlock] = None


# =========================
# Governed, client-facing result
# =========================
class InvestigationResponse(CamelModel):
    investigation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    analysis_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Deterministic truth, copied from AnalyticalResult
    evidence: Optional[EvidenceResult] = None
    false_positive_score: float = 0.0
    false_positive_likelihood: RiskLevel = RiskLevel.UNKNOWN
    confidence_score: float = 0.0

    # Narrative enrichment (LLM or rule-based fallback)
    narrative_summary: str = "Narrative unavailable"
    alert_risk_posture: str = "Unknown"
    evidence_matrix: List[EvidenceMatrixItem] = Field(default_factory=list)
    behavioural_comparison: Optional[BehaviouralComparison] = None
    contradictions: List[str] = Field(default_factory=list)
    recommended_action: Optional[RecommendedAction] = None

    # Governance
    confidence_justification: str = ""
    narrative_source: Literal["llm", "fallback"] = "fallback"
    narrative_error: Optional[str] = None


class StructuredChatResponse(CamelModel):
    session_id: Optional[str] = None
    response_type: str = "General"
    response: str = ""
    evidence_reference: List[str] = Field(default_factory=list)
    confidence_statement: str = "Not Available"
