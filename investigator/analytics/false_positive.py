from __future__ import annotations

from investigator.models import AlertInvestigationContext
from investigator.schemas import EvidenceResult, RiskLevel

# Signal weights; ranks are EvidenceStrength int values (max rank 3)
PATTERN_WEIGHT = 0.35
ALIGNMENT_WEIGHT = 0.30
BENEFICIARY_WEIGHT = 0.20
VELOCITY_WEIGHT = 0.15
MAX_RANK = 3.0


class FalsePositiveFramework:
    """Weighted false-positive score over the four evidence ranks, normalized to [0, 1]."""

    def calculate_score(self, context: AlertInvestigationContext, evidence: EvidenceResult) -> float:
        score = 0.0

        score += int(evidence.transaction_pattern_consistency) * PATTERN_WEIGHT
        score += int(evidence.historical_behavior_alignment) * ALIGNMENT_WEIGHT
        score += int(evidence.beneficiary_risk) * BENEFICIARY_WEIGHT
        score += int(evidence.velocity_anomaly) * VELOCITY_WEIGHT

        return score / MAX_RANK

    def determine_likelihood(self, score: float) -> RiskLevel:
        if score >= 0.7:
            return RiskLevel.LOW  # likely false positive
        if score >= 0.4:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH
