from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from investigator.analytics.analytical_engine import AnalyticalEngine
from investigator.config.settings import Settings
from investigator.data.aggregator import ContextAggregator
from investigator.graph.build_graph import build_investigation_graph
from investigator.graph.exchange_loop import AgenticExchangeLoop
from investigator.llm.prompt_builder import PromptBuilder
from investigator.models import Alert
from investigator.schemas import InvestigationResponse

logger = logging.getLogger(__name__)


class InvestigationOrchestrator:
    """
    Aggregate -> analyze -> prompt -> narrative -> merge -> governance.

    Always returns a schema-conformant InvestigationResponse; a failed or
    garbled narrative only switches the narrative fields to fallbacks.
    """

    def __init__(
        self,
        aggregator: ContextAggregator,
        exchange_loop: AgenticExchangeLoop,
        analytical_engine: Optional[AnalyticalEngine] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        audit_log_path: Optional[Path] = None,
        model_name: Optional[str] = None,
    ):
        self.aggregator = aggregator
        self.exchange_loop = exchange_loop
        self.analytical_engine = analytical_engine or AnalyticalEngine()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.audit_log_path = Path(audit_log_path) if audit_log_path else None

        self._graph = build_investigation_graph(
            self.aggregator,
            self.analytical_engine,
            self.prompt_builder,
            self.exchange_loop,
            model_name=model_name,
        )

    @classmethod
    def from_settings(cls, settings: Settings, bank_client: Any, gateway: Any) -> "InvestigationOrchestrator":
        return cls(
            aggregator=ContextAggregator(bank_client),
            exchange_loop=AgenticExchangeLoop(gateway),
            audit_log_path=settings.audit_log_path,
            model_name=settings.llm_model,
        )

    async def analyze_alert(self, alert: Alert) -> InvestigationResponse:
        final_state = await self._graph.ainvoke({"alert": alert})

        response: InvestigationResponse = final_state["response"]
        meta = final_state.get("narrative_meta") or {}

        logger.info(
            "Investigation %s complete (narrative=%s, likelihood=%s)",
            response.investigation_id,
            response.narrative_source,
            response.false_positive_likelihood.value,
            extra={"alert_id": alert.id},
        )

        if self.audit_log_path is not None:
            try:
                self._write_audit(alert, final_state, meta)
            except OSError:
                logger.exception(
                    "Audit write to %s failed for investigation %s",
                    self.audit_log_path,
                    response.investigation_id,
                    extra={"alert_id": alert.id},
                )

        return response

    # ---------------------------------------------------------
    # WRITE AUDIT
    # ---------------------------------------------------------

    def _write_audit(self, alert: Alert, final_state: Dict[str, Any], meta: Dict[str, Any]) -> None:
        analysis = final_state.get("analysis")
        response: InvestigationResponse = final_state["response"]

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "alert_id": alert.id,
            "investigation_id": response.investigation_id,
            "analysis": analysis.to_dict() if analysis is not None else None,
            "narrative_meta": meta,
            "response": response.model_dump(mode="json", by_alias=True),
        }

        self.audit_log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.audit_log_path.open("a") as f:
            f.write(json.dumps(record, default=str) + "\n")
