"""
String surgery on model output, kept apart from business logic.

- parse_model_output: provider envelope -> (text, tool requests)
- extract_reasoning_and_payload: split a <thinking> block from the JSON body
- parse_json_payload: tolerant JSON object extraction
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from json_repair import repair_json

from investigator.models import ToolCall

THINKING_RE = re.compile(r"<thinking>(.*?)</thinking>", re.IGNORECASE | re.DOTALL)
FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class ResponseParseError(ValueError):
    """Raised when model output does not contain a usable JSON object."""


@dataclass(frozen=True)
class ModelTurn:
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


@dataclass(frozen=True)
class FinalOutput:
    reasoning: Optional[str]
    payload: Optional[Dict[str, Any]]
    error: Optional[str]


# -------------------------
# Provider envelopes
# -------------------------

def _value_to_str(val: Any) -> str:
    """Normalize value to string (LLM may return nested objects instead of plain strings)."""
    if val is None:
        return ""
    if isinstance(val, str):
        return val.strip()
    if isinstance(val, (dict, list)):
        return json.dumps(val)
    return str(val)


def _parse_arguments(raw: Any) -> Dict[str, str]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return {}
    if not isinstance(raw, dict):
        return {}
    return {str(k): _value_to_str(v) for k, v in raw.items()}


def _join_text(parts: List[str]) -> str:
    return "\n".join(p for p in parts if p).strip()


def _from_openai(doc: Dict[str, Any]) -> ModelTurn:
    choices = doc.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ModelTurn(text="")

    message = choices[0].get("message") or {}
    content = message.get("content") or ""
    if isinstance(content, list):
        content = _join_text([c.get("text", "") for c in content if isinstance(c, dict)])

    calls = []
    for tc in message.get("tool_calls") or []:
        fn = tc.get("function") or {}
        calls.append(ToolCall(
            tool_name=fn.get("name") or "",
            args=_parse_arguments(fn.get("arguments")),
            call_id=tc.get("id"),
        ))
    return ModelTurn(text=str(content).strip(), tool_calls=calls)


def _from_content_blocks(blocks: List[Any]) -> ModelTurn:
    """Bedrock Converse ({"text"}/{"toolUse"}) and Anthropic ({"type": ...}) block lists."""
    texts: List[str] = []
    calls: List[ToolCall] = []

    for block in blocks:
        if not isinstance(block, dict):
            continue
        if "toolUse" in block:
            use = block["toolUse"] or {}
            calls.append(ToolCall(
                tool_name=use.get("name") or "",
                args=_parse_arguments(use.get("input")),
                call_id=use.get("toolUseId"),
            ))
        elif block.get("type") == "tool_use":
            calls.append(ToolCall(
                tool_name=block.get("name") or "",
                args=_parse_arguments(block.get("input")),
                call_id=block.get("id"),
            ))
        elif isinstance(block.get("text"), str):
            texts.append(block["text"])

    return ModelTurn(text=_join_text(texts), tool_calls=calls)


def parse_model_output(raw: Any) -> ModelTurn:
    """
    Extract plain text and tool-use requests from a raw model response.

    Accepts an OpenAI chat completion, a Bedrock Converse response, an
    Anthropic messages response (as JSON text or dict), or plain text.
    """
    if raw is None:
        return ModelTurn(text="")

    doc: Any = raw
    if isinstance(raw, str):
        s = raw.strip()
        if not s.startswith("{"):
            return ModelTurn(text=s)
        try:
            doc = json.loads(s)
        except json.JSONDecodeError:
            return ModelTurn(text=s)

    if not isinstance(doc, dict):
        return ModelTurn(text=_value_to_str(raw))

    if isinstance(doc.get("choices"), list):
        return _from_openai(doc)

    output = doc.get("output")
    if isinstance(output, dict) and isinstance(output.get("message"), dict):
        return _from_content_blocks(output["message"].get("content") or [])

    if isinstance(doc.get("content"), list):
        return _from_content_blocks(doc["content"])

    # a bare JSON answer, not an envelope
    return ModelTurn(text=raw.strip() if isinstance(raw, str) else json.dumps(doc))


# -------------------------
# Reasoning + JSON body
# -------------------------

def strip_code_fences(text: str) -> str:
    return FENCE_RE.sub("", text or "").strip()


def extract_reasoning_and_payload(raw_text: Optional[str]) -> Tuple[Optional[str], str]:
    """Return (thinking content or None, remaining text with fences stripped)."""
    if not raw_text:
        return None, ""

    blocks = [b.strip() for b in THINKING_RE.findall(raw_text)]
    reasoning = "\n\n".join(b for b in blocks if b) or None

    remainder = THINKING_RE.sub("", raw_text)
    return reasoning, strip_code_fences(remainder)


def _extract_json_object(s: str) -> Optional[str]:
    """First balanced {...} in s, ignoring braces inside string literals."""
    start = s.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(s)):
        ch = s[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return s[start:i + 1]

    # unbalanced: hand the tail to the repair pass
    return s[start:]


def _normalize_json_for_parsing(s: str) -> str:
    """Replace curly/smart quotes with straight quotes so json.loads can parse LLM output."""
    replacements = (
        ("“", '"'),
        ("”", '"'),
        ("‘", "'"),
        ("’", "'"),
        ("‛", "'"),
    )
    for old, new in replacements:
        s = s.replace(old, new)
    return s


def parse_json_payload(text: str) -> Dict[str, Any]:
    candidate = _extract_json_object(text or "")
    if candidate is None:
        raise ResponseParseError("Model output contains no JSON object")

    for attempt in (candidate, _normalize_json_for_parsing(candidate)):
        try:
            parsed = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict):
            raise ResponseParseError("Model output is not a JSON object")
        return parsed

    repaired = repair_json(_normalize_json_for_parsing(candidate), return_objects=True)
    if not isinstance(repaired, dict) or not repaired:
        raise ResponseParseError("Model did not return valid JSON")
    return repaired


def fold_reasoning(payload: Dict[str, Any], reasoning: Optional[str], narrative_field: str) -> Dict[str, Any]:
    """Prepend reasoning to payload[narrative_field] as [Analyst Reasoning] / [Conclusion]."""
    if not reasoning:
        return payload

    merged = dict(payload)
    conclusion = _value_to_str(payload.get(narrative_field))
    merged[narrative_field] = f"[Analyst Reasoning]\n{reasoning}\n\n[Conclusion]\n{conclusion}"
    return merged


def parse_final_text(text: Optional[str], narrative_field: str) -> FinalOutput:
    reasoning, body = extract_reasoning_and_payload(text)
    try:
        payload = parse_json_payload(body)
    except ResponseParseError as e:
        return FinalOutput(reasoning=reasoning, payload=None, error=str(e))
    return FinalOutput(
        reasoning=reasoning,
        payload=fold_reasoning(payload, reasoning, narrative_field),
        error=None,
    )
