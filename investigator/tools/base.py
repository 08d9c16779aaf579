from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional

from investigator.models import ToolCall, ToolResult

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND = "Tool not found"


class Tool(ABC):
    """
    A capability the model may invoke by name.

    ``execute`` must not raise for bad caller arguments; it returns a
    ToolResult whose output explains the problem instead.
    """

    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    async def execute(self, call: ToolCall) -> ToolResult:
        raise NotImplementedError

    def spec(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}

    # ---- helpers for subclasses ----

    def result(self, call: ToolCall, payload: Dict[str, Any]) -> ToolResult:
        return ToolResult(tool_name=self.name, output=json.dumps(payload, default=str), call_id=call.call_id)

    def error(self, call: ToolCall, message: str) -> ToolResult:
        return self.result(call, {"ok": False, "error": message})

    @staticmethod
    def arg(call: ToolCall, key: str) -> Optional[str]:
        value = (call.args or {}).get(key)
        if value is None or not str(value).strip():
            return None
        return str(value).strip()


class ToolRegistry:
    """Name-indexed tool set built once at startup. Lookup is case-insensitive."""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: Dict[str, Tool] = {}
        for tool in tools:
            key = tool.name.casefold()
            if not key:
                raise ValueError(f"Tool {type(tool).__name__} has no name")
            if key in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[key] = tool

    def get(self, name: Optional[str]) -> Optional[Tool]:
        if not name:
            return None
        return self._tools.get(name.casefold())

    def names(self) -> List[str]:
        return [t.name for t in self._tools.values()]

    def specs(self) -> List[Dict[str, Any]]:
        return [t.spec() for t in self._tools.values()]

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None


async def execute_tool_safe(tool: Optional[Tool], call: ToolCall) -> ToolResult:
    """Run one tool call; unknown tools and unexpected tool failures become result strings."""
    if tool is None:
        return ToolResult(tool_name=call.tool_name, output=TOOL_NOT_FOUND, call_id=call.call_id)

    try:
        return await tool.execute(call)
    except Exception as e:
        logger.exception("Tool %s failed", tool.name)
        return ToolResult(
            tool_name=tool.name,
            output=json.dumps({"ok": False, "error": f"{type(e).__name__}: {e}"}),
            call_id=call.call_id,
        )
