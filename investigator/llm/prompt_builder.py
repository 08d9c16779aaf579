from __future__ import annotations

import json
from typing import Any, Iterable, Optional, Sequence

from investigator.analytics.analytical_engine import AnalyticalResult
from investigator.config.prompts import (
    ANALYST_SYSTEM_PROMPT,
    ANALYTICAL_OUTPUT_FORMAT,
    FOLLOW_UP_OUTPUT_FORMAT,
    FOLLOW_UP_SYSTEM_PROMPT,
)
from investigator.models import AlertInvestigationContext
from investigator.schemas import EvidenceStrength, InvestigationResponse

NOT_AVAILABLE = "Not available"


def _v(value: Any) -> str:
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, EvidenceStrength):
        return value.label
    if hasattr(value, "value"):  # str enums
        return str(value.value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    text = str(value).strip()
    return text or NOT_AVAILABLE


def _join(values: Optional[Iterable[Any]]) -> str:
    items = [str(v) for v in (values or []) if v is not None and str(v).strip()]
    return ", ".join(items) if items else NOT_AVAILABLE


def _section(title: str, lines: Sequence[str]) -> str:
    return title + ":\n" + "\n".join(f"- {line}" for line in lines)


class PromptBuilder:
    """Renders prompt text only; no model calls. Missing data renders as "Not available"."""

    def build_analytical_prompt(self, context: AlertInvestigationContext, analysis: AnalyticalResult) -> str:
        txn = context.transaction
        geo = txn.geolocation if txn else None
        profile = context.customer_profile
        behaviour = context.customer_behaviour
        alert = context.alert
        e = analysis.evidence

        location = NOT_AVAILABLE
        if geo is not None and (geo.city or geo.country):
            location = ", ".join(p for p in (geo.city, geo.country) if p)

        sections = [
            ANALYST_SYSTEM_PROMPT.strip(),
            "TASK:\nAssess the transaction alert and produce the structured analytical response.",
            _section("TRANSACTION DETAILS", [
                f"Transaction Id: {_v(txn.transaction_id if txn else None)}",
                f"Type: {_v(txn.type if txn else None)}",
                f"Amount: {_v(txn.amount if txn else None)} {_v(txn.currency if txn else None)}",
                f"Channel: {_v(txn.channel if txn else None)}",
                f"Timestamp: {_v(txn.timestamp if txn else None)}",
                f"Source Account: {_v(txn.source_account if txn else None)}",
                f"Destination Account: {_v(txn.destination_account if txn else None)}",
                f"Location: {location}",
            ]),
            _section("CUSTOMER PROFILE", [
                f"Customer Id: {_v(profile.customer_id if profile else None)}",
                f"Risk Rating: {_v(profile.risk_rating if profile else None)}",
                f"Segment: {_v(profile.segment if profile else None)}",
                f"KYC Level: {_v(profile.kyc_level if profile else None)}",
                f"Occupation: {_v(profile.occupation if profile else None)}",
            ]),
            _section("CUSTOMER BEHAVIOUR BASELINE", [
                f"Average Transaction Amount: {_v(behaviour.avg_transaction_amount if behaviour else None)}",
                f"Maximum Historical Amount: {_v(behaviour.max_transaction_amount if behaviour else None)}",
                f"Preferred Channels: {_join(behaviour.preferred_channels if behaviour else None)}",
                f"Last Activity Timestamp: {_v(behaviour.last_activity_time_stamp if behaviour else None)}",
            ]),
            _section("ALERT CONTEXT", [
                f"Alert Id: {_v(alert.id)}",
                f"Alert Code: {_v(alert.alert_code)}",
                f"Alert Type: {_v(alert.alert_type)}",
                f"Alert Source: {_v(alert.alert_source)}",
                f"Severity: {_v(alert.severity)}",
                f"Risk Score: {_v(alert.risk_score)}",
                f"Alert Amount: {_v(alert.amount)} {_v(alert.currency)}",
                f"Description: {_v(alert.description)}",
                f"Prior Alerts On Record: {_v(len(context.alert_history) if context.alert_history is not None else None)}",
                f"Related Alerts: {len(context.related_alerts)}",
            ]),
            _section("ANALYTICAL SIGNALS", [
                f"Transaction Pattern Consistency: {_v(e.transaction_pattern_consistency)}",
                f"Historical Behavior Alignment: {_v(e.historical_behavior_alignment)}",
                f"Beneficiary Risk: {_v(e.beneficiary_risk)}",
                f"Velocity Anomaly: {_v(e.velocity_anomaly)}",
                f"False Positive Score: {analysis.false_positive_score:.4f}",
                f"False Positive Likelihood: {_v(analysis.false_positive_likelihood)}",
                f"Confidence Score: {analysis.confidence_score:.2f}",
            ]),
            ANALYTICAL_OUTPUT_FORMAT.strip(),
        ]
        return "\n\n".join(sections) + "\n"

    def build_follow_up_prompt(
        self,
        initial_context: Optional[InvestigationResponse],
        tool_names: Optional[Sequence[str]] = None,
    ) -> str:
        inv = initial_context
        e = inv.evidence if inv else None

        facts = _section("IMMUTABLE FACTS (DO NOT MODIFY)", [
            f"Investigation Id: {_v(inv.investigation_id if inv else None)}",
            f"False Positive Score: {_v(inv.false_positive_score if inv else None)}",
            f"False Positive Likelihood: {_v(inv.false_positive_likelihood if inv else None)}",
            f"Confidence Score: {_v(inv.confidence_score if inv else None)}",
            f"Transaction Pattern Consistency: {_v(e.transaction_pattern_consistency if e else None)}",
            f"Historical Behavior Alignment: {_v(e.historical_behavior_alignment if e else None)}",
            f"Beneficiary Risk: {_v(e.beneficiary_risk if e else None)}",
            f"Velocity Anomaly: {_v(e.velocity_anomaly if e else None)}",
        ])

        prior = NOT_AVAILABLE
        if inv is not None:
            prior = json.dumps(inv.model_dump(mode="json", by_alias=True), indent=2)

        tools = _section("AVAILABLE TOOLS", [_join(tool_names)])

        sections = [
            FOLLOW_UP_SYSTEM_PROMPT.strip(),
            facts,
            "PRIOR INVESTIGATION:\n" + prior,
            tools + "\nUse any available tool if it helps answer the question.",
            FOLLOW_UP_OUTPUT_FORMAT.strip(),
        ]
        return "\n\n".join(sections) + "\n"
