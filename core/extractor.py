"""Recovers a tool-call object from free-form model output."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

FENCED_JSON_PATTERN = re.compile(r"```json\s*(.*?)```", re.IGNORECASE | re.DOTALL)
BRACE_SPAN_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    Attributes:
        tool: Tool name
        arguments: Raw arguments as sent (dict, JSON string or anything else)
    """
    tool: str
    arguments: Any = field(default_factory=dict)


def _parse_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _as_tool_call(parsed: Optional[Dict[str, Any]]) -> Optional[ToolCall]:
    if not parsed or not parsed.get("tool"):
        return None
    arguments = parsed.get("arguments")
    return ToolCall(tool=str(parsed["tool"]), arguments={} if arguments is None else arguments)


def extract_tool_call(text: Optional[str]) -> Optional[ToolCall]:
    """
    Find a ``{"tool": ..., "arguments": ...}`` object in model output.

    Tried in order, first success wins:
    1. The whole trimmed text as JSON
    2. The first ```json fenced block
    3. The greedy span from the first "{" to the last "}"

    Args:
        text: Complete assistant text of one turn

    Returns:
        ToolCall, or None if no attempt yields an object with a truthy "tool"

    Example:
        >>> extract_tool_call('{"tool":"get_summary","arguments":{}}').tool
        'get_summary'
        >>> extract_tool_call("你的平均分是 85 分。") is None
        True
    """
    if not text:
        return None
    trimmed = text.strip()
    if not trimmed:
        return None

    call = _as_tool_call(_parse_object(trimmed))
    if call:
        return call

    fenced = FENCED_JSON_PATTERN.search(trimmed)
    if fenced and fenced.group(1):
        call = _as_tool_call(_parse_object(fenced.group(1)))
        if call:
            return call

    span = BRACE_SPAN_PATTERN.search(trimmed)
    if span:
        call = _as_tool_call(_parse_object(span.group(0)))
        if call:
            return call

    return None
