from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from investigator.analytics.confidence_score import ConfidenceScoreEngine
from investigator.analytics.evidence_weighting import EvidenceWeightingEngine
from investigator.analytics.false_positive import FalsePositiveFramework
from investigator.models import AlertInvestigationContext
from investigator.schemas import EvidenceResult, RiskLevel


@dataclass(frozen=True)
class AnalyticalResult:
    evidence: EvidenceResult
    false_positive_score: float
    false_positive_likelihood: RiskLevel
    confidence_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evidence": self.evidence.model_dump(mode="json", by_alias=True),
            "falsePositiveScore": self.false_positive_score,
            "falsePositiveLikelihood": self.false_positive_likelihood.value,
            "confidenceScore": self.confidence_score,
        }


class AnalyticalEngine:
    """
    Deterministic analysis: evidence -> false-positive score/likelihood -> confidence.

    Sequencing only; each sub-engine can be swapped out.
    """

    def __init__(
        self,
        evidence_engine: Optional[EvidenceWeightingEngine] = None,
        fp_framework: Optional[FalsePositiveFramework] = None,
        confidence_engine: Optional[ConfidenceScoreEngine] = None,
    ):
        self.evidence_engine = evidence_engine or EvidenceWeightingEngine()
        self.fp_framework = fp_framework or FalsePositiveFramework()
        self.confidence_engine = confidence_engine or ConfidenceScoreEngine()

    def analyze(self, context: AlertInvestigationContext) -> AnalyticalResult:
        evidence = self.evidence_engine.evaluate(context)

        fp_score = self.fp_framework.calculate_score(context, evidence)
        fp_likelihood = self.fp_framework.determine_likelihood(fp_score)

        confidence = self.confidence_engine.calculate(context, evidence)

        return AnalyticalResult(
            evidence=evidence,
            false_positive_score=fp_score,
            false_positive_likelihood=fp_likelihood,
            confidence_score=confidence,
        )
