from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire-facing base: camelCase JSON keys, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =========================
# Bank entities (read-only to the pipeline)
# =========================
class Alert(CamelModel):
    id: int
    alert_code: Optional[str] = None
    alert_type: Optional[str] = None
    alert_source: Optional[str] = None
    is_velocity_anomaly: bool = False
    severity: Optional[str] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    account_no: Optional[str] = None
    amount: float = 0.0
    currency: Optional[str] = None
    description: Optional[str] = None
    alert_time_stamp: Optional[datetime] = None
    status: Optional[str] = None
    risk_score: Optional[int] = None
    assigned_to: Optional[str] = None
    resolution_reason: Optional[str] = None
    alert_resolution_time_stamp: Optional[datetime] = None


class AdditionalData(CamelModel):
    merchant_name: Optional[str] = None
    merchant_category: Optional[str] = None


class GeoLocation(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None
    ip_address: Optional[str] = None


class Transaction(CamelModel):
    transaction_id: Optional[str] = None
    type: Optional[str] = None
    transaction_type: Optional[str] = None
    status: Optional[str] = None
    amount: float = 0.0
    currency: Optional[str] = None
    channel: Optional[str] = None
    timestamp: Optional[datetime] = None
    source_account: Optional[str] = None
    destination_account: Optional[str] = None
    additional_data: Optional[AdditionalData] = None
    geolocation: Optional[GeoLocation] = None


_RISK_RATINGS = ("Low", "Medium", "High")


class CustomerProfile(CamelModel):
    customer_id: Optional[int] = None
    kyc_level: Optional[str] = None
    occupation: Optional[str] = None
    relationship_type: Optional[str] = None
    risk_rating: Optional[str] = None
    segment: Optional[str] = None
    linked_accounts: List[str] = Field(default_factory=list)

    @field_validator("risk_rating", mode="before")
    @classmethod
    def _rating_from_ordinal(cls, v: Any) -> Any:
        # the bank API may serialize the rating enum as its ordinal
        if isinstance(v, int) and not isinstance(v, bool) and 0 <= v < len(_RISK_RATINGS):
            return _RISK_RATINGS[v]
        return v


class CustomerBehaviourProfile(CamelModel):
    id: Optional[int] = None
    customer_id: Optional[int] = None
    avg_no_of_monthly_transaction: Optional[int] = None
    avg_transaction_amount: float = 0.0
    max_transaction_amount: float = 0.0
    preferred_channels: List[str] = Field(default_factory=list)
    frequent_merchants: List[str] = Field(default_factory=list)
    transaction_pattern: Optional[str] = None
    login_frequency: Optional[int] = None
    last_activity_time_stamp: Optional[datetime] = None


class AlertInvestigationContext(CamelModel):
    """
    Canonical investigation object, assembled once by the aggregator.

    ``None`` means the data could not be fetched; an empty list means the
    bank returned nothing.
    """

    model_config = ConfigDict(frozen=True)

    alert: Alert
    alert_history: Optional[List[Alert]] = None
    transaction: Optional[Transaction] = None
    transaction_history: Optional[List[Transaction]] = None
    customer_profile: Optional[CustomerProfile] = None
    customer_behaviour: Optional[CustomerBehaviourProfile] = None
    related_alerts: List[Alert] = Field(default_factory=list)
    external_signals: Dict[str, Any] = Field(default_factory=dict)


# =========================
# LLM conversation + tools
# =========================
class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LlmMessage(CamelModel):
    role: Role
    content: str


class ToolCall(CamelModel):
    tool_name: str = ""
    args: Dict[str, str] = Field(default_factory=dict)
    call_id: Optional[str] = None


class ToolResult(CamelModel):
    tool_name: str = ""
    output: str = ""
    call_id: Optional[str] = None
