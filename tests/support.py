"""Fakes and builders shared across the test modules."""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from investigator.data.bank_client import BankDataError
from investigator.models import (
    Alert,
    AlertInvestigationContext,
    CustomerBehaviourProfile,
    CustomerProfile,
    Transaction,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Builders
# =============================================================================

def make_alert(**overrides: Any) -> Alert:
    fields: Dict[str, Any] = {
        "id": 1,
        "alert_code": "AML-VEL-01",
        "alert_type": "Velocity",
        "severity": "High",
        "customer_id": 7,
        "account_no": "ACC-1001",
        "amount": 1000.0,
        "currency": "USD",
    }
    fields.update(overrides)
    return Alert(**fields)


def make_txn(
    amount: float,
    minutes_before: Optional[float] = 0,
    destination: Optional[str] = "DEST-1",
    transaction_id: Optional[str] = None,
    channel: str = "Online",
) -> Transaction:
    ts = None if minutes_before is None else T0 - timedelta(minutes=minutes_before)
    return Transaction(
        transaction_id=transaction_id,
        amount=amount,
        currency="USD",
        channel=channel,
        timestamp=ts,
        source_account="ACC-1001",
        destination_account=destination,
    )


def make_profile(**overrides: Any) -> CustomerProfile:
    fields: Dict[str, Any] = {
        "customer_id": 7,
        "kyc_level": "Full",
        "occupation": "Engineer",
        "risk_rating": "Low",
        "segment": "Retail",
    }
    fields.update(overrides)
    return CustomerProfile(**fields)


def make_behaviour(max_amount: float = 2000.0, avg_amount: float = 800.0) -> CustomerBehaviourProfile:
    return CustomerBehaviourProfile(
        customer_id=7,
        avg_transaction_amount=avg_amount,
        max_transaction_amount=max_amount,
        preferred_channels=["Online", "Mobile"],
    )


def full_context(**overrides: Any) -> AlertInvestigationContext:
    """A complete context: history of three transactions, triggering txn is the latest."""
    history = [
        make_txn(900.0, minutes_before=0, destination="DEST-NEW", transaction_id="T3"),
        make_txn(950.0, minutes_before=120, destination="DEST-OLD", transaction_id="T2"),
        make_txn(850.0, minutes_before=240, destination="DEST-OLD", transaction_id="T1"),
    ]
    fields: Dict[str, Any] = {
        "alert": make_alert(),
        "alert_history": [make_alert()],
        "transaction": history[0],
        "transaction_history": history,
        "customer_profile": make_profile(),
        "customer_behaviour": make_behaviour(),
    }
    fields.update(overrides)
    return AlertInvestigationContext(**fields)


# =============================================================================
# Raw model responses
# =============================================================================

def openai_text(text: str) -> str:
    return json.dumps({
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": text}}],
    })


def openai_tool_calls(*calls: Tuple[str, Dict[str, Any], str]) -> str:
    return json.dumps({
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{
            "index": 0,
            "finish_reason": "tool_calls",
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {"id": call_id, "type": "function", "function": {"name": name, "arguments": json.dumps(args)}}
                    for name, args, call_id in calls
                ],
            },
        }],
    })


NARRATIVE_JSON = {
    "narrativeSummary": "Amount is consistent with the customer's history.",
    "alertRiskPosture": "Low",
    "evidenceMatrix": [{"signal": "Pattern", "observation": "Within 1.2x mean", "riskImpact": "Low"}],
    "behaviouralComparison": {
        "amountDeviation": "Minor",
        "channelConsistency": "Consistent",
        "activityConsistency": "Consistent",
    },
    "contradictions": [],
    "recommendedAction": {"action": "Close", "rationale": "Benign pattern"},
    "confidence": {"score": 0.8, "justification": "Complete data"},
}


CHAT_JSON = {
    "responseType": "Analysis",
    "response": "The alert is likely a false positive.",
    "evidenceReference": ["Transaction Pattern Consistency"],
    "confidenceStatement": "High",
}


# =============================================================================
# Fakes
# =============================================================================

class FakeBankClient:
    """In-memory bank client. Names in ``fail`` raise BankDataError."""

    def __init__(
        self,
        alert: Optional[Alert] = None,
        alerts: Optional[List[Alert]] = None,
        transactions: Optional[List[Transaction]] = None,
        profile: Optional[CustomerProfile] = None,
        behaviour: Optional[CustomerBehaviourProfile] = None,
        fail: Sequence[str] = (),
    ):
        self.alert = alert
        self.alerts = alerts
        self.transactions = transactions
        self.profile = profile
        self.behaviour = behaviour
        self.fail = set(fail)
        self.calls: List[Tuple[str, Any]] = []

    def _maybe_fail(self, name: str, arg: Any) -> None:
        self.calls.append((name, arg))
        if name in self.fail:
            raise BankDataError(f"{name} unavailable")

    async def get_alert_by_id(self, alert_id: int):
        self._maybe_fail("get_alert_by_id", alert_id)
        return self.alert

    async def get_alerts_by_customer(self, customer_id: int):
        self._maybe_fail("get_alerts_by_customer", customer_id)
        return self.alerts

    async def get_transactions_by_customer(self, customer_id: int):
        self._maybe_fail("get_transactions_by_customer", customer_id)
        return self.transactions

    async def get_customer_profile(self, customer_id: int):
        self._maybe_fail("get_customer_profile", customer_id)
        return self.profile

    async def get_customer_behaviour(self, customer_id: int):
        self._maybe_fail("get_customer_behaviour", customer_id)
        return self.behaviour


class ScriptedGateway:
    """Returns canned raw responses in order; an Exception entry is raised instead."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def complete_chat(self, messages, tools=None) -> str:
        self.calls.append({"messages": list(messages), "tools": tools})
        if not self.responses:
            raise AssertionError("ScriptedGateway ran out of responses")
        nxt = self.responses.pop(0)
        if isinstance(nxt, BaseException):
            raise nxt
        return nxt
