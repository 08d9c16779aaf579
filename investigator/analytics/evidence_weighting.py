from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from investigator.models import AlertInvestigationContext, Transaction
from investigator.schemas import EvidenceResult, EvidenceStrength

VELOCITY_WINDOW = timedelta(hours=1)


def _dec(x: float) -> Decimal:
    # str() first so 1.2 stays 1.2 rather than its binary expansion
    return Decimal(str(x))


def normalize_account(account: Optional[str]) -> Optional[str]:
    """Strip all whitespace and case-fold; empty or missing -> None."""
    if account is None:
        return None
    normalized = "".join(account.split()).casefold()
    return normalized or None


def _is_same_transaction(a: Transaction, b: Transaction) -> bool:
    if a is b:
        return True
    return b.transaction_id is not None and a.transaction_id == b.transaction_id


class EvidenceWeightingEngine:
    """
    Scores four independent evidence signals from the investigation context.

    Each signal answers "how strongly does this support a false positive?".
    Missing data always degrades a signal to NONE, never to an exception.
    """

    def evaluate(self, context: AlertInvestigationContext) -> EvidenceResult:
        return EvidenceResult(
            transaction_pattern_consistency=self.evaluate_transaction_pattern(context),
            historical_behavior_alignment=self.evaluate_behavior_alignment(context),
            beneficiary_risk=self.evaluate_beneficiary_risk(context),
            velocity_anomaly=self.evaluate_velocity(context),
        )

    # ---------------------------------------------------------
    # TRANSACTION PATTERN CONSISTENCY
    # ---------------------------------------------------------

    def evaluate_transaction_pattern(self, context: AlertInvestigationContext) -> EvidenceStrength:
        history = context.transaction_history
        if not history:
            return EvidenceStrength.NONE

        mean = sum(_dec(t.amount) for t in history) / len(history)
        amount = _dec(context.alert.amount)

        if amount <= mean * Decimal("1.2"):
            return EvidenceStrength.STRONG
        if amount <= mean * 2:
            return EvidenceStrength.MODERATE
        return EvidenceStrength.WEAK

    # ---------------------------------------------------------
    # HISTORICAL BEHAVIOUR ALIGNMENT
    # ---------------------------------------------------------

    def evaluate_behavior_alignment(self, context: AlertInvestigationContext) -> EvidenceStrength:
        behaviour = context.customer_behaviour
        if behaviour is None:
            return EvidenceStrength.NONE

        max_amount = _dec(behaviour.max_transaction_amount)
        amount = _dec(context.alert.amount)

        if amount <= max_amount * Decimal("1.1"):
            return EvidenceStrength.STRONG
        if amount <= max_amount * 2:
            return EvidenceStrength.MODERATE
        return EvidenceStrength.WEAK

    # ---------------------------------------------------------
    # VELOCITY ANOMALY
    # ---------------------------------------------------------

    def evaluate_velocity(self, context: AlertInvestigationContext) -> EvidenceStrength:
        history = context.transaction_history
        txn = context.transaction
        if not history or txn is None or txn.timestamp is None:
            return EvidenceStrength.NONE

        window_end = txn.timestamp
        window_start = window_end - VELOCITY_WINDOW

        in_window = [
            t for t in history
            if t.timestamp is not None and window_start <= t.timestamp <= window_end
        ]
        if not in_window:
            return EvidenceStrength.NONE

        count = len(in_window)
        aggregated = sum(_dec(t.amount) for t in in_window)

        # priority order: burst > clustering > mild deviation
        if count >= 10:
            return EvidenceStrength.STRONG
        if aggregated >= _dec(txn.amount) * 3:
            return EvidenceStrength.MODERATE
        if count >= 5:
            return EvidenceStrength.WEAK
        return EvidenceStrength.NONE

    # ---------------------------------------------------------
    # BENEFICIARY RISK
    # ---------------------------------------------------------

    def evaluate_beneficiary_risk(self, context: AlertInvestigationContext) -> EvidenceStrength:
        history = context.transaction_history
        txn = context.transaction
        if not history or txn is None:
            return EvidenceStrength.NONE

        target = normalize_account(txn.destination_account)
        if target is None:
            return EvidenceStrength.NONE

        prior = sum(
            1 for t in history
            if not _is_same_transaction(t, txn) and normalize_account(t.destination_account) == target
        )

        # brand-new counterparty is the riskiest case
        if prior == 0:
            return EvidenceStrength.STRONG
        if prior <= 2:
            return EvidenceStrength.MODERATE
        if prior <= 5:
            return EvidenceStrength.WEAK
        return EvidenceStrength.NONE
