"""
Function Calling Tools Module

This module contains all tools (functions) that the LLM agent can invoke
through text-based tool calls. These are the "hands" of the agent - the
read-only queries it can run over the student's grade snapshot.

Each tool is designed to:
- Have a clear, single purpose
- Accept loosely-typed arguments from the model and coerce them defensively
- Return a structured dict (or {"error": ...} for recoverable failures)
- Never mutate the snapshot it reads
- Be independently testable

Tools are registered in the tool registry for the dispatcher to use.
"""

from .transcript_tools import (
    get_total_credits,
    get_summary,
    search_courses,
    get_course_detail,
    get_ranked_courses,
    get_term_summary,
    calc_required_avg,
)

from .arguments import (
    safe_number,
    safe_limit,
    coerce_arguments,
)

from .dispatcher import ToolDispatcher


# Tool registry for the dispatcher
def get_tool_registry():
    """
    Get the complete registry of available tools.

    Returns:
        Dictionary mapping tool names to callable functions
    """
    return {
        # Credit & summary tools
        "get_total_credits": get_total_credits,
        "get_summary": get_summary,

        # Course lookup tools
        "search_courses": search_courses,
        "get_course_detail": get_course_detail,
        "get_ranked_courses": get_ranked_courses,

        # Term & target tools
        "get_term_summary": get_term_summary,
        "calc_required_avg": calc_required_avg,
    }


__all__ = [
    # Transcript tools
    "get_total_credits",
    "get_summary",
    "search_courses",
    "get_course_detail",
    "get_ranked_courses",
    "get_term_summary",
    "calc_required_avg",

    # Argument coercion
    "safe_number",
    "safe_limit",
    "coerce_arguments",

    # Registry & dispatch
    "ToolDispatcher",
    "get_tool_registry",
]
