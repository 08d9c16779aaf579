from __future__ import annotations

from typing import Optional

from investigator.models import AlertInvestigationContext
from investigator.schemas import EvidenceResult


class ConfidenceScoreEngine:
    """Data-completeness confidence: 1.0 minus fixed penalties per missing context field."""

    def calculate(self, context: AlertInvestigationContext, evidence: Optional[EvidenceResult] = None) -> float:
        score = 1.0

        if context.transaction is None or not context.transaction_history:
            score -= 0.3

        if context.alert_history is None:
            score -= 0.1

        if context.customer_behaviour is None:
            score -= 0.2

        return max(score, 0.0)
