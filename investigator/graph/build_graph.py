from __future__ import annotations

from typing import Optional

from langgraph.graph import END, StateGraph

from investigator.analytics.analytical_engine import AnalyticalEngine
from investigator.data.aggregator import ContextAggregator
from investigator.graph.exchange_loop import AgenticExchangeLoop
from investigator.graph.node import (
    make_node_aggregate_context,
    make_node_build_prompt,
    make_node_run_analytics,
    node_governance_check,
    node_merge_results,
)
from investigator.graph.node_narrative import make_node_generate_narrative
from investigator.graph.state import InvestigationState
from investigator.llm.prompt_builder import PromptBuilder


def build_investigation_graph(
    aggregator: ContextAggregator,
    engine: AnalyticalEngine,
    prompt_builder: PromptBuilder,
    exchange_loop: AgenticExchangeLoop,
    model_name: Optional[str] = None,
):

    g = StateGraph(InvestigationState)

    # Nodes
    g.add_node("aggregate_context", make_node_aggregate_context(aggregator))
    g.add_node("run_analytics", make_node_run_analytics(engine))
    g.add_node("build_prompt", make_node_build_prompt(prompt_builder))
    g.add_node("generate_narrative", make_node_generate_narrative(exchange_loop, model_name))
    g.add_node("merge_results", node_merge_results)
    g.add_node("governance_check", node_governance_check)

    g.set_entry_point("aggregate_context")
    g.add_edge("aggregate_context", "run_analytics")
    g.add_edge("run_analytics", "build_prompt")
    g.add_edge("build_prompt", "generate_narrative")
    g.add_edge("generate_narrative", "merge_results")
    g.add_edge("merge_results", "governance_check")
    g.add_edge("governance_check", END)

    return g.compile()
