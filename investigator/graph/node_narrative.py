from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from investigator.graph.exchange_loop import AgenticExchangeLoop
from investigator.llm.gateway import LlmGatewayError
from investigator.models import LlmMessage, Role
from investigator.schemas import LlmAnalysisResponse

logger = logging.getLogger(__name__)

NARRATIVE_FIELD = "narrativeSummary"


def validate_narrative_fields(payload: Dict[str, Any]) -> Tuple[LlmAnalysisResponse, List[str]]:
    """
    Validate the narrative one top-level field at a time.

    Fields that fail validation are dropped (and later replaced by fallbacks);
    the well-formed rest is kept. Returns the narrative and the dropped keys.
    """
    data = dict(payload)
    dropped: List[str] = []

    while True:
        try:
            return LlmAnalysisResponse.model_validate(data), dropped
        except ValidationError as e:
            bad = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            keys = [k for k in data if k in bad or to_camel(k) in bad]
            if not keys:
                raise
            for k in keys:
                data.pop(k)
                dropped.append(k)


def make_node_generate_narrative(exchange_loop: AgenticExchangeLoop, model_name: Optional[str] = None):
    """
    LLM-backed narrative node (no tools on this pass).

    Expects:
        state["prompt"]   (written by the prompt node)

    Writes:
        state["narrative"]       LlmAnalysisResponse, or None
        state["narrative_meta"]  ok / error / category / reasoning
    """

    async def _node(state: Dict[str, Any]) -> Dict[str, Any]:
        meta: Dict[str, Any] = {
            "ok": False,
            "error": None,
            "category": None,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "model": model_name,
            "reasoning": None,
        }

        prompt = state.get("prompt")
        if not prompt:
            meta["error"] = "Missing prompt in state (prompt builder may have failed)."
            return {"narrative": None, "narrative_meta": meta}

        try:
            result = await exchange_loop.run(
                [LlmMessage(role=Role.SYSTEM, content=prompt)],
                tools=None,
                narrative_field=NARRATIVE_FIELD,
            )
        except LlmGatewayError as e:
            logger.warning("Narrative generation failed: %s", e)
            meta["error"] = f"{type(e).__name__}: {e}"
            meta["category"] = e.category.value
            return {"narrative": None, "narrative_meta": meta}
        except Exception as e:
            logger.exception("Narrative generation crashed")
            meta["error"] = f"{type(e).__name__}: {e}"
            return {"narrative": None, "narrative_meta": meta}

        meta["reasoning"] = result.reasoning

        if result.payload is None:
            meta["error"] = f"ResponseParseError: {result.parse_error}"
            return {"narrative": None, "narrative_meta": meta}

        try:
            narrative, dropped = validate_narrative_fields(result.payload)
        except ValidationError as e:
            meta["error"] = f"ValidationError: {e.error_count()} schema error(s) in narrative"
            return {"narrative": None, "narrative_meta": meta}

        if dropped:
            logger.warning("Dropped malformed narrative field(s): %s", ", ".join(dropped))
            meta["error"] = f"ValidationError: malformed narrative field(s) replaced by fallbacks: {', '.join(dropped)}"

        meta["ok"] = True
        return {"narrative": narrative, "narrative_meta": meta}

    return _node
