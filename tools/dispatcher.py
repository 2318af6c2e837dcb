"""Dispatches model-requested tool calls against the session's grade snapshot."""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from services.grade_service import GradeSnapshot
from tools.arguments import coerce_arguments

logger = logging.getLogger(__name__)

ToolFunction = Callable[[GradeSnapshot, Dict[str, Any]], Dict[str, Any]]


class ToolDispatcher:
    """
    Looks up a tool by name and runs it over a read-only snapshot.

    Unknown names and exceptions escaping a tool become ``{"error": ...}``
    results instead of raising, so the failure can be fed back to the model.
    """

    def __init__(
        self,
        snapshot: GradeSnapshot,
        registry: Optional[Mapping[str, ToolFunction]] = None,
    ):
        """
        Args:
            snapshot: Data every tool reads from (never mutated)
            registry: Name → tool function; defaults to get_tool_registry()
        """
        if registry is None:
            from tools import get_tool_registry
            registry = get_tool_registry()
        self.snapshot = snapshot
        self.registry = dict(registry)

    @property
    def tool_names(self):
        return list(self.registry)

    def dispatch(self, tool_name: str, arguments: Any = None) -> Dict[str, Any]:
        """
        Execute a tool.

        Args:
            tool_name: Name requested by the model
            arguments: Raw arguments; coerced to a dict, malformed input → {}

        Returns:
            The tool's result mapping, or {"error": ...}
        """
        tool_fn = self.registry.get(tool_name)
        if tool_fn is None:
            logger.warning(f"⚠️  Unknown tool requested: {tool_name}")
            return {"error": f"unknown tool: {tool_name}"}

        args = coerce_arguments(arguments)
        logger.info(f"🔧 Executing tool '{tool_name}' with args: {args}")

        try:
            result = tool_fn(self.snapshot, args)
        except Exception as e:
            logger.error(f"❌ Tool {tool_name} execution failed: {e}", exc_info=True)
            return {"error": f"tool {tool_name} failed: {e}"}

        if not isinstance(result, dict):
            result = {"result": result}
        return result
