from __future__ import annotations

from typing import Any, Dict

from investigator.analytics.analytical_engine import AnalyticalEngine
from investigator.data.aggregator import ContextAggregator
from investigator.llm.prompt_builder import PromptBuilder
from investigator.narrative_merge import merge_results, validate_narrative_consistency


# -------------------------
# Node 1: Context aggregation
# -------------------------
def make_node_aggregate_context(aggregator: ContextAggregator):
    async def _node(state: Dict[str, Any]) -> Dict[str, Any]:
        context = await aggregator.build_context(state["alert"])
        return {"context": context}

    return _node


# -------------------------
# Node 2: Deterministic analytics
# -------------------------
def make_node_run_analytics(engine: AnalyticalEngine):
    def _node(state: Dict[str, Any]) -> Dict[str, Any]:
        return {"analysis": engine.analyze(state["context"])}

    return _node


# -------------------------
# Node 3: Prompt
# -------------------------
def make_node_build_prompt(builder: PromptBuilder):
    def _node(state: Dict[str, Any]) -> Dict[str, Any]:
        return {"prompt": builder.build_analytical_prompt(state["context"], state["analysis"])}

    return _node


# -------------------------
# Node 5: Merge (deterministic truth + narrative or fallbacks)
# -------------------------
def node_merge_results(state: Dict[str, Any]) -> Dict[str, Any]:
    meta = state.get("narrative_meta") or {}
    response = merge_results(state["analysis"], state.get("narrative"), meta.get("error"))
    return {"response": response}


# -------------------------
# Node 6: Governance shield (always runs)
# -------------------------
def node_governance_check(state: Dict[str, Any]) -> Dict[str, Any]:
    response = validate_narrative_consistency(state["response"], state.get("analysis"))
    return {"response": response}
