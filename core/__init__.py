"""
Core Agent Logic Module

This module contains the brain of GradeMate's agentic system:
- Response classification: tool call or answer, decided while streaming
- Tool-call extraction from free-form model output
- Conversation state: one append-only log with display/upstream projections
- Agent orchestration: the bounded think / extract / act loop

The agent loops over model turns, dispatching the tools the model asks
for, until it produces a plain-text answer.
"""

from ai import AgentError, TransportError, RequestCancelled, CancelToken

from .classifier import (
    ResponseClassifier,
    StreamUpdate,
    TurnKind,
    looks_like_tool_call,
)

from .extractor import (
    ToolCall,
    extract_tool_call,
)

from .conversation import (
    Conversation,
    TranscriptEntry,
    project_display,
    project_upstream,
)

from .orchestrator import (
    AgentOrchestrator,
    AgentState,
    AgentStatus,
    ToolResult,
    tool_call_key,
)

__all__ = [
    # Errors & cancellation
    "AgentError",
    "TransportError",
    "RequestCancelled",
    "CancelToken",

    # Classifier
    "ResponseClassifier",
    "StreamUpdate",
    "TurnKind",
    "looks_like_tool_call",

    # Extractor
    "ToolCall",
    "extract_tool_call",

    # Conversation
    "Conversation",
    "TranscriptEntry",
    "project_display",
    "project_upstream",

    # Orchestrator
    "AgentOrchestrator",
    "AgentState",
    "AgentStatus",
    "ToolResult",
    "tool_call_key",
]
