from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langgraph.graph import END, StateGraph

from investigator.graph.state import ExchangeState
from investigator.llm.response_parser import parse_final_text, parse_model_output
from investigator.models import LlmMessage, Role, ToolCall, ToolResult
from investigator.tools.base import ToolRegistry, execute_tool_safe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeResult:
    final_text: str
    reasoning: Optional[str]
    payload: Optional[Dict[str, Any]]
    parse_error: Optional[str]
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_results: List[ToolResult] = field(default_factory=list)
    messages: List[LlmMessage] = field(default_factory=list)


def serialize_tool_requests(calls: Sequence[ToolCall]) -> str:
    return json.dumps({"toolRequests": [c.model_dump(by_alias=True) for c in calls]})


def serialize_tool_results(results: Sequence[ToolResult]) -> str:
    return json.dumps({"toolResults": [r.model_dump(by_alias=True) for r in results]})


class AgenticExchangeLoop:
    """
    At most two model rounds:

        call_model --(tool requests)--> execute_tools -> call_model_final -> finalize
                   \\-----------------(no tools)------------------------/

    Parse failures land in ``parse_error``; gateway errors propagate.
    """

    def __init__(self, gateway: Any):
        self.gateway = gateway
        self._graph = self._build()

    # -------------------------
    # Nodes
    # -------------------------

    async def _call_model(self, state: ExchangeState) -> Dict[str, Any]:
        registry = state.get("registry")
        specs = registry.specs() if registry else None

        raw = await self.gateway.complete_chat(state["messages"], tools=specs or None)
        turn = parse_model_output(raw)
        return {"first_turn": turn, "final_text": turn.text}

    async def _execute_tools(self, state: ExchangeState) -> Dict[str, Any]:
        registry = state.get("registry")
        calls = list(state["first_turn"].tool_calls)

        # sequential, request order
        results: List[ToolResult] = []
        for call in calls:
            tool = registry.get(call.tool_name) if registry else None
            if tool is None:
                logger.warning("Model requested unknown tool %r", call.tool_name)
            results.append(await execute_tool_safe(tool, call))

        messages = list(state["messages"]) + [
            LlmMessage(role=Role.ASSISTANT, content=serialize_tool_requests(calls)),
            LlmMessage(role=Role.USER, content=serialize_tool_results(results)),
        ]
        return {"tool_calls": calls, "tool_results": results, "messages": messages}

    async def _call_model_final(self, state: ExchangeState) -> Dict[str, Any]:
        raw = await self.gateway.complete_chat(state["messages"])
        return {"final_text": parse_model_output(raw).text}

    def _finalize(self, state: ExchangeState) -> Dict[str, Any]:
        final = parse_final_text(state.get("final_text"), state.get("narrative_field") or "response")
        if final.error:
            logger.warning("Final model output unparseable: %s", final.error)
        return {"reasoning": final.reasoning, "payload": final.payload, "parse_error": final.error}

    @staticmethod
    def _route_after_model(state: ExchangeState) -> str:
        return "execute_tools" if state["first_turn"].wants_tools else "finalize"

    def _build(self):
        g = StateGraph(ExchangeState)

        g.add_node("call_model", self._call_model)
        g.add_node("execute_tools", self._execute_tools)
        g.add_node("call_model_final", self._call_model_final)
        g.add_node("finalize", self._finalize)

        g.set_entry_point("call_model")
        g.add_conditional_edges(
            "call_model",
            self._route_after_model,
            {"execute_tools": "execute_tools", "finalize": "finalize"},
        )
        g.add_edge("execute_tools", "call_model_final")
        g.add_edge("call_model_final", "finalize")
        g.add_edge("finalize", END)

        return g.compile()

    # -------------------------
    # Entry point
    # -------------------------

    async def run(
        self,
        messages: Sequence[LlmMessage],
        tools: Optional[ToolRegistry] = None,
        narrative_field: str = "response",
    ) -> ExchangeResult:
        out = await self._graph.ainvoke({
            "messages": list(messages),
            "registry": tools,
            "narrative_field": narrative_field,
        })

        return ExchangeResult(
            final_text=out.get("final_text") or "",
            reasoning=out.get("reasoning"),
            payload=out.get("payload"),
            parse_error=out.get("parse_error"),
            tool_calls=list(out.get("tool_calls") or []),
            tool_results=list(out.get("tool_results") or []),
            messages=list(out.get("messages") or []),
        )
