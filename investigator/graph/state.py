from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from investigator.analytics.analytical_engine import AnalyticalResult
from investigator.llm.response_parser import ModelTurn
from investigator.models import Alert, AlertInvestigationContext, LlmMessage, ToolCall, ToolResult
from investigator.schemas import InvestigationResponse, LlmAnalysisResponse
from investigator.tools.base import ToolRegistry


class ExchangeState(TypedDict, total=False):

    # Input
    messages: List[LlmMessage]
    registry: Optional[ToolRegistry]
    narrative_field: str

    # Round 1
    first_turn: ModelTurn

    # Tool round (only when the model asked for tools)
    tool_calls: List[ToolCall]
    tool_results: List[ToolResult]

    # Final text + parse outcome
    final_text: str
    reasoning: Optional[str]
    payload: Optional[Dict[str, Any]]
    parse_error: Optional[str]


class InvestigationState(TypedDict, total=False):

    # Input
    alert: Alert

    # Deterministic stages
    context: AlertInvestigationContext
    analysis: AnalyticalResult

    # Narrative (optional); None when the model failed or returned garbage
    prompt: str
    narrative: Optional[LlmAnalysisResponse]
    narrative_meta: Dict[str, Any]

    # Merged + governed output
    response: InvestigationResponse
